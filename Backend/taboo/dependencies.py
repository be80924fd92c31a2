from fastapi import Header, Request

from taboo.config import settings
from taboo.services.llm_provider import LLMProvider, create_provider
from taboo.services.word_set_repository import WordSetRepository


def get_repository(request: Request) -> WordSetRepository:
    return request.app.state.repository


def get_device_id(x_device_id: str = Header(default="")) -> str:
    """Device id from the X-Device-ID header. Missing means "" which owns nothing."""
    return x_device_id.strip()


def get_llm_provider() -> LLMProvider | None:
    return create_provider(settings)
