"""LLM backends for card generation.

Each provider turns a system/user prompt pair into raw model text that should
hold a JSON object with a "cards" array. Clients are built once per provider
with a hard request timeout and few retries, so a slow backend hands control
back to the fallback catalogue quickly.
"""

from abc import ABC, abstractmethod

from taboo.config import Settings

OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
ANTHROPIC_DEFAULT_MODEL = "claude-sonnet-4-6"

# Room for a full batch of cards with five taboo words each
CARD_BATCH_MAX_TOKENS = 4000


class LLMProvider(ABC):
    @abstractmethod
    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's raw text answer."""
        ...


class OpenAIProvider(LLMProvider):
    """Chat completions in JSON mode."""

    def __init__(
        self,
        api_key: str,
        model: str = OPENAI_DEFAULT_MODEL,
        timeout: float = 30.0,
        max_retries: int = 1,
    ):
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self._api_key,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            max_tokens=CARD_BATCH_MAX_TOKENS,
            temperature=0.9,
        )
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    """Messages API; the JSON shape is enforced by the system prompt."""

    def __init__(
        self,
        api_key: str,
        model: str = ANTHROPIC_DEFAULT_MODEL,
        timeout: float = 30.0,
        max_retries: int = 1,
    ):
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(
                api_key=self._api_key,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        response = await self._get_client().messages.create(
            model=self.model,
            max_tokens=CARD_BATCH_MAX_TOKENS,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")


def create_provider(settings: Settings) -> LLMProvider | None:
    """The provider named by AI_PROVIDER, or None when it has no API key."""
    limits = {"timeout": settings.AI_TIMEOUT, "max_retries": settings.AI_MAX_RETRIES}
    if settings.AI_PROVIDER == "openai" and settings.OPENAI_API_KEY:
        return OpenAIProvider(
            settings.OPENAI_API_KEY, settings.AI_MODEL or OPENAI_DEFAULT_MODEL, **limits
        )
    if settings.AI_PROVIDER == "anthropic" and settings.ANTHROPIC_API_KEY:
        return AnthropicProvider(
            settings.ANTHROPIC_API_KEY, settings.AI_MODEL or ANTHROPIC_DEFAULT_MODEL, **limits
        )
    return None
