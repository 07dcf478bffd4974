"""Cross-origin policy for the submission gateway.

The browser game lives on a single origin, so the policy is static:

- `OPTIONS` on the submit path is answered here with 204 and the allowed
  origin, methods (`POST, OPTIONS`) and headers (`Content-Type`).
- Any other method except `POST` on the submit path gets 405.
- Every response, errors included (unexpected ones become a generic 500),
  carries `Access-Control-Allow-Origin` so the client can read the body.

Configuration via environment variables (see `RuntimeSettings`):

- `ALLOWED_ORIGIN`: the one origin allowed to call the gateway.
- `CORS_MAX_AGE_SECONDS`: how long browsers may cache the preflight.
- `SUBMIT_PATH`: the submission route.
"""
from __future__ import annotations

import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("POST", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type",)


class SingleOriginCORSMiddleware(BaseHTTPMiddleware):

    def __init__(
        self,
        app,
        allowed_origin: str,
        submit_path: str = "/",
        max_age_seconds: int = 86400,
    ):
        super().__init__(app)
        self.allowed_origin = allowed_origin
        self.submit_path = submit_path
        self.max_age_seconds = max_age_seconds

    async def dispatch(self, request: Request, call_next: Callable):
        if request.url.path == self.submit_path:
            if request.method == "OPTIONS":
                return Response(status_code=204, headers=self.preflight_headers())
            if request.method != "POST":
                return self._with_origin(
                    JSONResponse(status_code=405, content={"error": "Method not allowed"})
                )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("unhandled error on %s %s", request.method, request.url.path)
            response = JSONResponse(status_code=500, content={"error": "Internal server error"})
        return self._with_origin(response)

    def preflight_headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allowed_origin,
            "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
            "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
            "Access-Control-Max-Age": str(self.max_age_seconds),
            "Vary": "Origin",
        }

    def _with_origin(self, response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = self.allowed_origin
        response.headers["Vary"] = "Origin"
        return response


def configure_cors(app, allowed_origin: str, submit_path: str, max_age_seconds: int) -> None:
    """Add the single-origin policy to a FastAPI app."""
    app.add_middleware(
        SingleOriginCORSMiddleware,
        allowed_origin=allowed_origin,
        submit_path=submit_path,
        max_age_seconds=max_age_seconds,
    )
    logger.info("cors policy: origin=%s path=%s", allowed_origin, submit_path)
