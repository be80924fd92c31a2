"""Word Generation Service - LLM-generated Taboo cards with a local fallback.

Asks the configured provider for cards in batches, keeping only cards with a
fresh main word and exactly five taboo words. Whatever the provider cannot
deliver (no provider, API error, unparseable output) is filled from a fixed
local catalogue, so generation never fails for the player.
"""

import asyncio
import json
import logging

from taboo.config import settings
from taboo.schemas.word_set import CardRecord
from taboo.services.llm_provider import LLMProvider

logger = logging.getLogger(__name__)

TABOO_WORD_COUNT = 5

CARD_GENERATION_SYSTEM_PROMPT = """You write cards for the party game Taboo, in Italian.

Each card has a main word to guess and exactly 5 taboo words that players may not say.
Every main word must be a single word, unique, and absent from the excluded list.

Return ONLY a JSON object with this structure, no other text:
{"cards": [{"mainWord": "parola", "tabooWords": ["uno", "due", "tre", "quattro", "cinque"]}]}"""

CARD_GENERATION_USER = "Generate {count} Taboo cards.\n{topic_line}{category_line}{exclude_line}"

FALLBACK_CARDS = [
    ("Calcio", ["Pallone", "Goal", "Campo", "Squadra", "Giocatore"]),
    ("Pizza", ["Napoli", "Forno", "Mozzarella", "Pomodoro", "Margherita"]),
    ("Spiaggia", ["Mare", "Sabbia", "Ombrellone", "Estate", "Sole"]),
    ("Ospedale", ["Medico", "Malato", "Infermiere", "Cura", "Letto"]),
    ("Chitarra", ["Corde", "Suonare", "Strumento", "Musica", "Accordi"]),
    ("Treno", ["Binario", "Stazione", "Vagone", "Biglietto", "Viaggio"]),
    ("Biblioteca", ["Libri", "Leggere", "Prestito", "Silenzio", "Scaffale"]),
    ("Neve", ["Bianco", "Inverno", "Freddo", "Sciare", "Fiocco"]),
    ("Aereo", ["Volare", "Pilota", "Ali", "Aeroporto", "Cielo"]),
    ("Gatto", ["Miao", "Felino", "Baffi", "Topo", "Fusa"]),
    ("Cinema", ["Film", "Schermo", "Popcorn", "Biglietto", "Sala"]),
    ("Compleanno", ["Torta", "Candeline", "Regalo", "Festa", "Auguri"]),
    ("Ombrello", ["Pioggia", "Aprire", "Bagnato", "Manico", "Riparo"]),
    ("Scuola", ["Maestra", "Classe", "Compiti", "Studenti", "Lezione"]),
    ("Telefono", ["Chiamare", "Squillo", "Cellulare", "Numero", "Pronto"]),
    ("Montagna", ["Vetta", "Alta", "Scalare", "Neve", "Alpi"]),
    ("Orologio", ["Ore", "Tempo", "Lancette", "Polso", "Sveglia"]),
    ("Bicicletta", ["Pedali", "Ruote", "Catena", "Sella", "Giro"]),
    ("Dentista", ["Denti", "Carie", "Trapano", "Bocca", "Spazzolino"]),
    ("Vulcano", ["Lava", "Eruzione", "Etna", "Cratere", "Vesuvio"]),
    ("Caffè", ["Tazzina", "Espresso", "Bar", "Moka", "Zucchero"]),
    ("Luna", ["Notte", "Piena", "Satellite", "Cielo", "Crescente"]),
    ("Matrimonio", ["Sposi", "Anello", "Chiesa", "Abito", "Nozze"]),
    ("Pompiere", ["Fuoco", "Incendio", "Idrante", "Sirena", "Spegnere"]),
    ("Dinosauro", ["Estinto", "Fossile", "Preistoria", "Rex", "Giurassico"]),
    ("Fotografia", ["Scatto", "Macchina", "Immagine", "Obiettivo", "Foto"]),
    ("Semaforo", ["Rosso", "Verde", "Giallo", "Incrocio", "Strada"]),
    ("Pinguino", ["Ghiaccio", "Polo", "Uccello", "Nuotare", "Antartide"]),
    ("Violino", ["Archetto", "Corde", "Orchestra", "Suonare", "Strumento"]),
    ("Carnevale", ["Maschera", "Costume", "Coriandoli", "Venezia", "Festa"]),
]


def _build_user_prompt(topic: str, category: str, count: int, exclude_words: list[str]) -> str:
    return CARD_GENERATION_USER.format(
        count=count,
        topic_line=f"The words should be related to {topic}.\n"
        if topic
        else "The words should come from various categories.\n",
        category_line=f"The difficulty level should be {category}.\n" if category else "",
        exclude_line=(
            "DO NOT use any of these as main words: " + ", ".join(exclude_words)
            if exclude_words
            else ""
        ),
    )


def _card_list(parsed) -> list | None:
    if isinstance(parsed, dict):
        parsed = parsed.get("cards")
    return parsed if isinstance(parsed, list) else None


def _parse_cards_json(raw: str) -> list:
    """Extract the card dicts from LLM response text.

    Accepts {"cards": [...]} (JSON mode) or a bare array, optionally wrapped
    in markdown fences or chatter.
    """
    stripped = raw.strip()

    try:
        cards = _card_list(json.loads(stripped))
        if cards is not None:
            return cards
    except json.JSONDecodeError:
        pass

    # Markdown code fences or chatter around the array
    start = stripped.find("[")
    end = stripped.rfind("]")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(stripped[start : end + 1])
            if isinstance(parsed, list):
                return parsed
        except json.JSONDecodeError:
            pass

    return []


def _validate_cards(items: list, excluded: set[str], limit: int) -> list[CardRecord]:
    """Keep well-formed cards whose main word is new; adds accepted words to `excluded`."""
    cards = []
    for item in items:
        if len(cards) >= limit:
            break
        if not isinstance(item, dict):
            continue
        main_word = item.get("mainWord")
        taboo_words = item.get("tabooWords")
        if not isinstance(main_word, str) or not main_word.strip():
            continue
        if not isinstance(taboo_words, list) or len(taboo_words) != TABOO_WORD_COUNT:
            continue
        if not all(isinstance(w, str) and w.strip() for w in taboo_words):
            continue

        key = main_word.strip().lower()
        if key in excluded:
            continue
        excluded.add(key)
        cards.append(
            CardRecord(
                main_word=main_word.strip(),
                taboo_words=[w.strip() for w in taboo_words],
            )
        )
    return cards


def fallback_cards(count: int, excluded: set[str]) -> list[CardRecord]:
    """Deterministic cards from the local catalogue, skipping excluded words."""
    cards = []
    for index, (main_word, taboo_words) in enumerate(FALLBACK_CARDS, start=1):
        if len(cards) >= count:
            break
        if main_word.lower() in excluded:
            continue
        cards.append(
            CardRecord(id=f"fallback-{index}", main_word=main_word, taboo_words=list(taboo_words))
        )
    return cards


async def generate_cards(
    topic: str,
    category: str,
    count: int,
    exclude_words: list[str],
    provider: LLMProvider | None,
    batch_size: int = settings.GENERATION_BATCH_SIZE,
    timeout: float = settings.AI_TIMEOUT,
) -> dict:
    """Generate up to `count` cards about `topic`.

    Returns dict with:
        - cards: list of CardRecord
        - used_llm: bool indicating whether any card came from the provider
    """
    excluded = {w.strip().lower() for w in exclude_words if w.strip()}
    cards: list[CardRecord] = []

    if provider is not None:
        while len(cards) < count:
            batch = min(batch_size, count - len(cards))
            avoid = list(exclude_words) + [c.main_word for c in cards]
            try:
                raw = await asyncio.wait_for(
                    provider.generate(
                        CARD_GENERATION_SYSTEM_PROMPT,
                        _build_user_prompt(topic, category, batch, avoid),
                    ),
                    timeout=timeout,
                )
            except Exception:
                logger.exception("LLM card generation failed for topic %r", topic)
                break

            new_cards = _validate_cards(_parse_cards_json(raw), excluded, batch)
            if not new_cards:
                logger.warning("LLM returned no usable cards for topic %r", topic)
                break
            cards.extend(new_cards)

    used_llm = bool(cards)
    if len(cards) < count:
        cards.extend(fallback_cards(count - len(cards), excluded))
    return {"cards": cards, "used_llm": used_llm}
