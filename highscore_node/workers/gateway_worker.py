from __future__ import annotations

import logging
from typing import Annotated, Any

import uvicorn
from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from highscore_node.config.runtime import RuntimeSettings
from highscore_node.infrastructure.memory import InMemoryRateLimitStore
from highscore_node.infrastructure.redis_store import RedisRateLimitStore
from highscore_node.interfaces.rate_limit_store import RateLimitStore
from highscore_node.middleware.cors import configure_cors
from highscore_node.services.dispatch import PublicationTrigger
from highscore_node.services.gateway import SubmissionGateway, invalid_request
from highscore_node.services.rate_limiter import RateLimiter

SETTINGS = RuntimeSettings.from_env()

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


def build_rate_limit_store(settings: RuntimeSettings) -> RateLimitStore:
    if settings.rate_limit_backend == "memory":
        logger.warning("using in-process rate limit store; limits are not shared between instances")
        return InMemoryRateLimitStore()
    return RedisRateLimitStore(host=settings.redis_host, port=settings.redis_port, db=settings.redis_db)


def build_gateway(settings: RuntimeSettings) -> SubmissionGateway:
    rate_limiter = RateLimiter(
        build_rate_limit_store(settings),
        window_seconds=settings.rate_limit_window_seconds,
        ttl_seconds=settings.rate_limit_ttl_seconds,
    )
    trigger = PublicationTrigger(
        repository=settings.github_repository,
        token=settings.github_token,
        api_url=settings.github_api_url,
        event_type=settings.dispatch_event_type,
        timeout_seconds=settings.dispatch_timeout_seconds,
    )
    return SubmissionGateway(rate_limiter=rate_limiter, trigger=trigger)


_gateway: SubmissionGateway | None = None


def get_gateway() -> SubmissionGateway:
    global _gateway
    if _gateway is None:
        _gateway = build_gateway(SETTINGS)
    return _gateway


def client_address(request: Request, header_names: tuple[str, ...]) -> str:
    """Submitter key: first trusted proxy header present, else the peer address."""
    for name in header_names:
        value = request.headers.get(name, "").strip()
        if value:
            # X-Forwarded-For lists the original client first.
            return value.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


async def _invalid_request_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    response = invalid_request()
    return JSONResponse(status_code=response.status_code, content=response.body)


def create_app(settings: RuntimeSettings = SETTINGS) -> FastAPI:
    app = FastAPI(title="Highscore Submission Gateway")
    configure_cors(
        app,
        allowed_origin=settings.allowed_origin,
        submit_path=settings.submit_path,
        max_age_seconds=settings.cors_max_age_seconds,
    )
    app.add_exception_handler(RequestValidationError, _invalid_request_handler)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    def submit_score(
        request: Request,
        gateway: Annotated[SubmissionGateway, Depends(get_gateway)],
        payload: Annotated[Any, Body()] = None,
    ) -> JSONResponse:
        response = gateway.submit(payload, client_address(request, settings.client_address_headers))
        return JSONResponse(
            status_code=response.status_code,
            content=response.body,
            headers=response.headers,
        )

    app.add_api_route(settings.submit_path, submit_score, methods=["POST"])
    return app


app = create_app()


def main() -> None:
    configure_logging(SETTINGS.log_level)
    logger.info("gateway bootstrap origin=%s path=%s", SETTINGS.allowed_origin, SETTINGS.submit_path)
    uvicorn.run(app, host=SETTINGS.gateway_host, port=SETTINGS.gateway_port)


if __name__ == "__main__":
    main()
