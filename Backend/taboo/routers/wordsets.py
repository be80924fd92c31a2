from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from taboo.dependencies import get_device_id, get_llm_provider, get_repository
from taboo.schemas.word_set import (
    DeleteResponse,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    PermissionResponse,
    WordSetRecord,
)
from taboo.services.llm_provider import LLMProvider
from taboo.services.word_generation_service import generate_cards
from taboo.services.word_set_repository import (
    DELETED,
    FORBIDDEN,
    NOT_FOUND,
    SAVED,
    SAVED_OFFLINE,
    WordSetRepository,
)

router = APIRouter(prefix="/wordsets", tags=["wordsets"])


def _error(status_code: int, message: str | None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message or "Request failed", **extra},
    )


@router.get("", response_model=list[WordSetRecord])
async def list_word_sets(
    response: Response,
    repository: WordSetRepository = Depends(get_repository),
):
    """All word sets, newest first, from the best reachable tier."""
    result = await repository.load_all()
    response.headers["X-Data-Source"] = result.source
    return result.word_sets


@router.post(
    "",
    response_model=WordSetRecord,
    responses={202: {"model": WordSetRecord}, 403: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
@router.put("", response_model=WordSetRecord, include_in_schema=False)
async def save_word_set(
    data: WordSetRecord,
    device_id: str = Depends(get_device_id),
    repository: WordSetRepository = Depends(get_repository),
):
    """Create or update a word set. Cards are replaced wholesale."""
    # Built-in sets only come from the defaults catalogue
    data = data.model_copy(update={"is_custom": True})
    result = await repository.save(data, device_id)
    body = result.word_set.model_dump(mode="json", by_alias=True)

    if result.status == SAVED:
        return result.word_set
    if result.status == SAVED_OFFLINE:
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body)
    if result.status == FORBIDDEN:
        return _error(status.HTTP_403_FORBIDDEN, result.notice)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, result.notice, wordSet=body)


@router.get("/{set_id}/permissions", response_model=PermissionResponse)
async def get_permissions(
    set_id: str,
    device_id: str = Depends(get_device_id),
    repository: WordSetRepository = Depends(get_repository),
):
    return PermissionResponse(can_delete=await repository.can_delete(set_id, device_id))


@router.delete(
    "/{set_id}",
    response_model=DeleteResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def delete_word_set(
    set_id: str,
    device_id: str = Depends(get_device_id),
    repository: WordSetRepository = Depends(get_repository),
):
    result = await repository.delete(set_id, device_id)
    if result.status == DELETED:
        return DeleteResponse(success=True)
    if result.status == FORBIDDEN:
        return _error(status.HTTP_403_FORBIDDEN, result.notice)
    if result.status == NOT_FOUND:
        return _error(status.HTTP_404_NOT_FOUND, result.notice)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, result.notice)


@router.post("/generate", response_model=GenerateResponse)
async def generate_word_set_cards(
    data: GenerateRequest,
    provider: LLMProvider | None = Depends(get_llm_provider),
):
    """Generate cards for a new set. Falls back to built-in cards when the LLM can't help."""
    result = await generate_cards(
        data.topic,
        data.category,
        data.count,
        data.exclude_words,
        provider,
    )
    return GenerateResponse(cards=result["cards"], used_llm=result["used_llm"])
