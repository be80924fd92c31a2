"""Built-in word sets served when no persisted tier can be reached."""

from datetime import datetime, timezone

from taboo.schemas.word_set import CardRecord, WordSetRecord
from taboo.storage.base import LOAD_ALL, StorageTier


def _cards(prefix: str, entries: list[tuple[str, list[str]]]) -> list[CardRecord]:
    return [
        CardRecord(id=f"{prefix}-{index}", main_word=main_word, taboo_words=taboo_words)
        for index, (main_word, taboo_words) in enumerate(entries, start=1)
    ]


DEFAULT_WORD_SETS = (
    WordSetRecord(
        id="default-base",
        name="Set Base",
        description="Il set di parole classico del gioco Taboo",
        is_custom=False,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        cards=_cards(
            "base",
            [
                ("Calcio", ["Pallone", "Goal", "Campo", "Squadra", "Giocatore"]),
                ("Pizza", ["Napoli", "Forno", "Mozzarella", "Pomodoro", "Margherita"]),
                ("Spiaggia", ["Mare", "Sabbia", "Ombrellone", "Estate", "Sole"]),
                ("Ospedale", ["Medico", "Malato", "Infermiere", "Cura", "Letto"]),
                ("Chitarra", ["Corde", "Suonare", "Strumento", "Musica", "Accordi"]),
                ("Treno", ["Binario", "Stazione", "Vagone", "Biglietto", "Viaggio"]),
                ("Biblioteca", ["Libri", "Leggere", "Prestito", "Silenzio", "Scaffale"]),
                ("Neve", ["Bianco", "Inverno", "Freddo", "Sciare", "Fiocco"]),
            ],
        ),
    ),
    WordSetRecord(
        id="default-cucina",
        name="Cucina Italiana",
        description="Piatti e ingredienti della tradizione",
        is_custom=False,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        cards=_cards(
            "cucina",
            [
                ("Lasagna", ["Pasta", "Forno", "Ragù", "Besciamella", "Strati"]),
                ("Tiramisù", ["Dolce", "Caffè", "Mascarpone", "Savoiardi", "Cacao"]),
                ("Risotto", ["Riso", "Brodo", "Mantecare", "Milano", "Zafferano"]),
                ("Espresso", ["Caffè", "Tazzina", "Bar", "Moka", "Forte"]),
                ("Gelato", ["Cono", "Freddo", "Gusto", "Coppetta", "Estate"]),
                ("Parmigiano", ["Formaggio", "Grattugiato", "Reggiano", "Stagionato", "Forma"]),
            ],
        ),
    ),
)


class DefaultsTier(StorageTier):
    """Read-only, always available, never mutated."""

    name = "defaults"
    operations = frozenset({LOAD_ALL})

    async def load_all(self) -> list[WordSetRecord]:
        return [word_set.model_copy(deep=True) for word_set in DEFAULT_WORD_SETS]
