import time
from enum import Enum


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpen(Exception):
    def __init__(self, name: str, retry_after: float | None = None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker OPEN for {name}")


class CircuitBreaker:
    """
    Breaker around the hosted store, shared by every dashboard backend
    instance through redis.

    Layout:
      - breaker:<name>           hash with `state` and `opened_at`; absent means CLOSED
      - breaker:<name>:failures  counter, expires after the failure window
      - breaker:<name>:trial     token held by the single HALF_OPEN trial

    OPEN rejects everything until reset_timeout_seconds have passed. The
    circuit then goes HALF_OPEN and exactly one caller (whoever claims the
    trial token) is let through; its outcome closes or re-opens the circuit.
    A trial that never reports back releases the token after
    trial_timeout_seconds.
    """

    def __init__(
        self,
        name: str,
        redis,
        failure_threshold: int = 5,
        reset_timeout_seconds: int = 10,
        failure_window_seconds: int = 60,
        trial_timeout_seconds: int = 10,
    ):
        self.name = name
        self.redis = redis
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds
        self.failure_window_seconds = failure_window_seconds
        self.trial_timeout_seconds = trial_timeout_seconds

    @property
    def state_key(self) -> str:
        return f"breaker:{self.name}"

    @property
    def failures_key(self) -> str:
        return f"breaker:{self.name}:failures"

    @property
    def trial_key(self) -> str:
        return f"breaker:{self.name}:trial"

    async def _load(self) -> tuple[BreakerState, float | None]:
        data = await self.redis.hgetall(self.state_key)
        state = BreakerState(data.get("state") or BreakerState.CLOSED.value)
        opened_at = float(data["opened_at"]) if data.get("opened_at") else None
        return state, opened_at

    async def _claim_trial(self) -> bool:
        claimed = await self.redis.set(self.trial_key, str(time.time()), nx=True, ex=self.trial_timeout_seconds)
        return bool(claimed)

    async def allow_request(self) -> None:
        state, opened_at = await self._load()

        if state is BreakerState.CLOSED:
            return

        if state is BreakerState.OPEN:
            retry_after = self.reset_timeout_seconds - (time.time() - (opened_at or 0.0))
            if retry_after > 0:
                raise CircuitBreakerOpen(self.name, retry_after)
            await self.redis.hset(self.state_key, "state", BreakerState.HALF_OPEN.value)

        if not await self._claim_trial():
            raise CircuitBreakerOpen(self.name)

    async def record_success(self) -> None:
        state, _ = await self._load()
        if state is BreakerState.CLOSED:
            await self.redis.delete(self.failures_key)
        elif state is BreakerState.HALF_OPEN:
            await self.close()

    async def record_failure(self) -> None:
        state, _ = await self._load()

        if state is BreakerState.HALF_OPEN:
            await self.open()
            return
        if state is BreakerState.OPEN:
            return

        failures = await self.redis.incr(self.failures_key)
        if failures == 1:
            await self.redis.expire(self.failures_key, self.failure_window_seconds)

        if failures >= self.failure_threshold:
            await self.open()

    async def open(self) -> None:
        pipe = self.redis.pipeline()
        pipe.hset(self.state_key, mapping={"state": BreakerState.OPEN.value, "opened_at": str(time.time())})
        pipe.delete(self.failures_key, self.trial_key)
        await pipe.execute()

    async def close(self) -> None:
        await self.redis.delete(self.state_key, self.failures_key, self.trial_key)

    async def status(self) -> dict:
        state, opened_at = await self._load()
        failures = await self.redis.get(self.failures_key)
        retry_after = None
        if state is BreakerState.OPEN:
            retry_after = max(0.0, round(self.reset_timeout_seconds - (time.time() - (opened_at or 0.0)), 2))
        return {
            "name": self.name,
            "state": state.value,
            "failures": int(failures or 0),
            "failure_threshold": self.failure_threshold,
            "failure_window_seconds": self.failure_window_seconds,
            "reset_timeout_seconds": self.reset_timeout_seconds,
            "retry_after_seconds": retry_after,
            "trial_in_flight": bool(await self.redis.exists(self.trial_key)),
        }
