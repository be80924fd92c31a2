from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOWED_HEADERS = "Content-Type, X-Device-ID"


class DeviceCORSMiddleware(BaseHTTPMiddleware):
    """CORS for the word-set API.

    Answers every preflight OPTIONS with an empty 204 and exposes the
    X-Device-ID header the clients identify themselves with.
    """

    def __init__(self, app, allow_origins: list[str]):
        super().__init__(app)
        self.allow_origins = allow_origins

    def _allowed_origin(self, origin: str | None) -> str | None:
        if "*" in self.allow_origins:
            return "*"
        if origin and origin in self.allow_origins:
            return origin
        return None

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)

        allowed_origin = self._allowed_origin(request.headers.get("origin"))
        if allowed_origin is not None:
            response.headers["Access-Control-Allow-Origin"] = allowed_origin
            response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
            response.headers["Access-Control-Expose-Headers"] = "X-Data-Source"
            if allowed_origin != "*":
                response.headers["Vary"] = "Origin"
        return response
