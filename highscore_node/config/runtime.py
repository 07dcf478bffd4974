from __future__ import annotations

from dataclasses import dataclass, field
import os


def _csv(raw: str) -> tuple[str, ...]:
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class RuntimeSettings:
    allowed_origin: str
    cors_max_age_seconds: int
    submit_path: str
    client_address_headers: tuple[str, ...]
    rate_limit_window_seconds: int
    rate_limit_ttl_seconds: int
    rate_limit_backend: str
    redis_host: str
    redis_port: int
    redis_db: int
    github_api_url: str
    github_repository: str
    github_token: str = field(repr=False)
    dispatch_event_type: str
    dispatch_timeout_seconds: float
    github_timeout_seconds: float
    data_path: str
    base_branch: str
    proposal_branch: str
    arbitration_max_attempts: int
    gateway_host: str
    gateway_port: int
    log_level: str

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            allowed_origin=os.getenv("ALLOWED_ORIGIN", "http://localhost:4000"),
            cors_max_age_seconds=int(os.getenv("CORS_MAX_AGE_SECONDS", "86400")),
            submit_path=os.getenv("SUBMIT_PATH", "/"),
            client_address_headers=_csv(
                os.getenv("CLIENT_ADDRESS_HEADERS", "cf-connecting-ip,x-forwarded-for")
            ),
            rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "30")),
            rate_limit_ttl_seconds=int(os.getenv("RATE_LIMIT_TTL_SECONDS", "60")),
            rate_limit_backend=os.getenv("RATE_LIMIT_BACKEND", "redis").strip().lower(),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_db=int(os.getenv("REDIS_DB", "0")),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            github_repository=os.getenv("GITHUB_REPOSITORY", ""),
            github_token=os.getenv("GITHUB_TOKEN", ""),
            dispatch_event_type=os.getenv("DISPATCH_EVENT_TYPE", "update-score"),
            dispatch_timeout_seconds=float(os.getenv("DISPATCH_TIMEOUT_SECONDS", "5")),
            github_timeout_seconds=float(os.getenv("GITHUB_TIMEOUT_SECONDS", "10")),
            data_path=os.getenv("HIGHSCORE_DATA_PATH", "_data/highscore.json"),
            base_branch=os.getenv("HIGHSCORE_BASE_BRANCH", "main"),
            proposal_branch=os.getenv("HIGHSCORE_PROPOSAL_BRANCH", "highscore-update"),
            arbitration_max_attempts=int(os.getenv("ARBITRATION_MAX_ATTEMPTS", "8")),
            gateway_host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
            gateway_port=int(os.getenv("GATEWAY_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
