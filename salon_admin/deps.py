from .breaker import CircuitBreaker
from .cache import CollectionCache
from .config import (
    BREAKER_FAILURE_THRESHOLD,
    BREAKER_FAILURE_WINDOW_SECONDS,
    BREAKER_TRIAL_TIMEOUT_SECONDS,
    BREAKER_RESET_SECONDS,
    CACHE_TTL_SECONDS,
    STORE_KEY,
    STORE_TIMEOUT,
    STORE_URL,
)
from .redis_client import redis_client
from .store import StoreClient

cb_store = CircuitBreaker(
    "store",
    redis_client,
    failure_threshold=BREAKER_FAILURE_THRESHOLD,
    reset_timeout_seconds=BREAKER_RESET_SECONDS,
    failure_window_seconds=BREAKER_FAILURE_WINDOW_SECONDS,
    trial_timeout_seconds=BREAKER_TRIAL_TIMEOUT_SECONDS,
)

store = StoreClient(STORE_URL, STORE_KEY, timeout=STORE_TIMEOUT, breaker=cb_store)

collection_cache = CollectionCache(redis_client, ttl_seconds=CACHE_TTL_SECONDS)


def get_store() -> StoreClient:
    return store


def get_cache() -> CollectionCache | None:
    return collection_cache


def get_breakers() -> dict[str, CircuitBreaker]:
    return {"store": cb_store}
