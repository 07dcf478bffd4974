from abc import ABC, abstractmethod


class RateLimitStore(ABC):
    """Small key/value store with per-key expiry."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass
