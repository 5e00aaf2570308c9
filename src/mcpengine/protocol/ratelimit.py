"""Hierarchical rate limiting — global, per-method and per-tool token buckets.

``allow`` gates every inbound RPC (global tier, then the method tier);
``allow_tool`` gates tool invocations on the tool tier alone. The two waits
in ``allow`` are independent: a caller may spend a global token and then
fail on the method tier.

Typical usage::

    limiter = RateLimiter(RateLimitConfig.default())
    await limiter.allow("tools/call", timeout=1.0)
    await limiter.allow_tool("search")
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel, Field, NonNegativeFloat, NonNegativeInt, model_validator

from mcpengine.protocol.errors import RateLimitedError

logger = logging.getLogger(__name__)

WILDCARD = "*"

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RateLimitConfig(BaseModel):
    """Rates (tokens per second) and bursts for the three tiers.

    Field defaults are the reference limits; a ``"*"`` key in the tool
    mappings applies to every tool without its own entry.
    """

    global_rps: NonNegativeFloat = 100.0
    global_burst: NonNegativeInt = 50
    method_rps: dict[str, NonNegativeFloat] = Field(
        default_factory=lambda: {
            "resources/read": 20.0,
            "resources/list": 10.0,
            "tools/call": 5.0,
            "completion/complete": 10.0,
        }
    )
    method_burst: dict[str, NonNegativeInt] = Field(
        default_factory=lambda: {
            "resources/read": 10,
            "resources/list": 5,
            "tools/call": 3,
            "completion/complete": 5,
        }
    )
    tool_rps: dict[str, NonNegativeFloat] = Field(default_factory=lambda: {WILDCARD: 2.0})
    tool_burst: dict[str, NonNegativeInt] = Field(default_factory=lambda: {WILDCARD: 1})

    @model_validator(mode="after")
    def _pair_rates_with_bursts(self) -> RateLimitConfig:
        for tier, rps, burst in (
            ("method", self.method_rps, self.method_burst),
            ("tool", self.tool_rps, self.tool_burst),
        ):
            unpaired = set(rps) ^ set(burst)
            if unpaired:
                msg = f"{tier} limits need both rps and burst for: {', '.join(sorted(unpaired))}"
                raise ValueError(msg)
        return self

    @classmethod
    def default(cls) -> RateLimitConfig:
        """Return the reference configuration."""
        return cls()


# ---------------------------------------------------------------------------
# Token bucket
# ---------------------------------------------------------------------------


class TokenBucket:
    """A single token bucket holding up to *burst* tokens, refilled at *rate*/s.

    Refill and consume happen under one mutex so concurrent admission checks
    are linearised; blocked waiters queue on an :class:`asyncio.Lock` and are
    served in arrival order.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        scope: str = "bucket",
        key: str | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        if rate < 0 or burst < 0:
            msg = f"rate and burst must be >= 0 (got rate={rate}, burst={burst})"
            raise ValueError(msg)
        self.rate = float(rate)
        self.burst = int(burst)
        self.scope = scope
        self.key = key
        self._clock = clock
        self._tokens = float(burst)
        self._last_refill = clock()
        self._mutex = threading.Lock()
        self._queue = asyncio.Lock()

    def __repr__(self) -> str:
        return f"TokenBucket(rate={self.rate}, burst={self.burst}, scope={self.scope!r}, key={self.key!r})"

    @property
    def tokens(self) -> float:
        """Tokens available right now."""
        with self._mutex:
            self._refill()
            return self._tokens

    @property
    def last_refill(self) -> float:
        return self._last_refill

    def try_acquire(self) -> bool:
        """Consume a token if one is available, without waiting."""
        with self._mutex:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    async def wait(self, timeout: float | None = None) -> None:
        """Consume a token, sleeping until one accrues.

        Raises :class:`RateLimitedError` when *timeout* elapses first or the
        bucket can never admit again. Task cancellation propagates as
        :class:`asyncio.CancelledError`.
        """
        if not self._queue.locked() and self.try_acquire():
            return
        try:
            if timeout is None:
                await self._wait_turn()
            else:
                await asyncio.wait_for(self._wait_turn(), timeout=timeout)
        except TimeoutError:
            raise RateLimitedError(self.scope, self.key, f"no token within {timeout}s") from None

    async def _wait_turn(self) -> None:
        async with self._queue:
            while True:
                with self._mutex:
                    self._refill()
                    if self._tokens >= 1:
                        self._tokens -= 1
                        return
                    delay = self._seconds_until_token()
                if delay is None:
                    logger.warning("Rejected %s:%s, bucket can never admit", self.scope, self.key)
                    raise RateLimitedError(self.scope, self.key, "bucket exhausted")
                await asyncio.sleep(delay)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed <= 0:
            return
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last_refill = now

    def _seconds_until_token(self) -> float | None:
        if self.burst < 1 or self.rate <= 0:
            return None
        return (1.0 - self._tokens) / self.rate


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LimitSnapshot:
    """A point-in-time view of one bucket, for display."""

    tier: str
    key: str | None
    rate: float
    burst: int
    tokens: float


class _Tier:
    """Key → bucket map; lookups are lock-free, replacement swaps the map."""

    def __init__(self, scope: str, clock: Clock) -> None:
        self.scope = scope
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, TokenBucket] = {}

    def load(self, rps: dict[str, float], burst: dict[str, int]) -> None:
        self._buckets = {
            key: TokenBucket(rate, burst[key], scope=self.scope, key=key, clock=self._clock)
            for key, rate in rps.items()
        }

    def get(self, key: str) -> TokenBucket | None:
        return self._buckets.get(key)

    def resolve(self, key: str) -> TokenBucket | None:
        buckets = self._buckets
        bucket = buckets.get(key)
        return bucket if bucket is not None else buckets.get(WILDCARD)

    def replace(self, key: str, rps: float, burst: int) -> None:
        bucket = TokenBucket(rps, burst, scope=self.scope, key=key, clock=self._clock)
        with self._lock:
            updated = dict(self._buckets)
            updated[key] = bucket
            self._buckets = updated

    def items(self) -> list[tuple[str, TokenBucket]]:
        return sorted(self._buckets.items())


class RateLimiter:
    """Three independent tiers of token buckets plus the admission protocol."""

    def __init__(self, config: RateLimitConfig | None = None, *, clock: Clock = time.monotonic) -> None:
        self._config = config or RateLimitConfig.default()
        self._clock = clock
        self._global = TokenBucket(
            self._config.global_rps,
            self._config.global_burst,
            scope="global",
            clock=clock,
        )
        self._methods = _Tier("method", clock)
        self._methods.load(self._config.method_rps, self._config.method_burst)
        self._tools = _Tier("tool", clock)
        self._tools.load(self._config.tool_rps, self._config.tool_burst)

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    async def allow(self, method: str, timeout: float | None = None) -> None:
        """Admit one call to *method*: global tier first, then the method's own bucket.

        Only an exact method entry is consulted. *timeout* bounds both waits
        together.
        """
        deadline = _deadline(timeout)
        await self._global.wait(timeout)
        bucket = self._methods.get(method)
        if bucket is not None:
            await bucket.wait(_remaining(deadline))
        logger.debug("Admitted method %s", method)

    async def allow_tool(self, tool_name: str, timeout: float | None = None) -> None:
        """Admit one invocation of *tool_name* on the tool tier only.

        Falls back to the ``"*"`` bucket, and admits unconditionally when
        neither exists.
        """
        bucket = self._tools.resolve(tool_name)
        if bucket is None:
            return
        await bucket.wait(timeout)
        logger.debug("Admitted tool %s", tool_name)

    def update_method_limit(self, method: str, rps: float, burst: int) -> None:
        """Replace the bucket for *method*; in-flight waits keep their old bucket."""
        self._methods.replace(method, rps, burst)
        logger.info("Method limit for %s set to %s rps, burst %d", method, rps, burst)

    def update_tool_limit(self, tool: str, rps: float, burst: int) -> None:
        """Replace the bucket for *tool*; in-flight waits keep their old bucket."""
        self._tools.replace(tool, rps, burst)
        logger.info("Tool limit for %s set to %s rps, burst %d", tool, rps, burst)

    def snapshot(self) -> list[LimitSnapshot]:
        """Return every configured bucket, global first."""
        rows = [LimitSnapshot("global", None, self._global.rate, self._global.burst, self._global.tokens)]
        for tier in (self._methods, self._tools):
            for key, bucket in tier.items():
                rows.append(LimitSnapshot(tier.scope, key, bucket.rate, bucket.burst, bucket.tokens))
        return rows


def _deadline(timeout: float | None) -> float | None:
    if timeout is None:
        return None
    return time.monotonic() + timeout


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())
