"""In-memory fixed-window rate limiter keyed by action and client address."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Allowed attempts per window for one action kind."""

    max_attempts: int
    window_seconds: int
    label: str = "request"


DEFAULT_RULES: dict[str, RateLimitRule] = {
    "login": RateLimitRule(5, 15 * 60, "login"),
    "register": RateLimitRule(3, 60 * 60, "registration"),
    "forgot_password": RateLimitRule(3, 15 * 60, "password reset"),
    "reset_password": RateLimitRule(3, 15 * 60, "password reset"),
    "change_password": RateLimitRule(3, 15 * 60, "password change"),
    "logout": RateLimitRule(5, 60, "logout"),
    "oauth": RateLimitRule(10, 5 * 60, "sign-in"),
    "payment": RateLimitRule(5, 5 * 60, "payment"),
    "payment_reactivation": RateLimitRule(5, 5 * 60, "payment"),
    "payment_webhook": RateLimitRule(100, 60, "webhook"),
    "order_cancel": RateLimitRule(10, 60, "cancellation"),
    "checkout_session": RateLimitRule(20, 60, "checkout"),
    "api": RateLimitRule(100, 60, "request"),
}

DEFAULT_ACTION = "api"

# Response delay (seconds) by attempt number within the current window
PROGRESSIVE_DELAY_STEPS = (0.0, 0.0, 1.0, 5.0, 15.0)


@dataclass
class AttemptWindow:
    """Attempt counter for one (action, address) pair."""

    count: int
    started_at: float


@dataclass
class RateLimitDecision:
    """Outcome of a rate-limit check."""

    allowed: bool
    attempts: int
    limit: int
    retry_after: int = 0
    message: str | None = None


class RateLimiter:
    """Thread-safe fixed-window rate limiter with automatic cleanup.

    Each (action, client address) pair gets a counter whose window starts
    at the first attempt. Refused attempts are not counted. State lives in
    process memory and resets on restart.
    """

    def __init__(
        self,
        rules: dict[str, RateLimitRule] | None = None,
        multiplier: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval_seconds: int = 300,
    ) -> None:
        self.rules = dict(rules or DEFAULT_RULES)
        self.multiplier = multiplier
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock
        self._windows: dict[tuple[str, str], AttemptWindow] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        """Create a limiter scaled by the configured multiplier."""
        from portal.core.config import get_settings

        settings = get_settings()
        return cls(multiplier=settings.rate_limit_multiplier)

    def rule_for(self, action: str) -> RateLimitRule:
        """Get the effective rule for an action, with the multiplier applied.

        Unknown actions use the generic API rule.
        """
        rule = self.rules.get(action) or self.rules[DEFAULT_ACTION]
        scaled = max(1, int(rule.max_attempts * self.multiplier))
        return RateLimitRule(scaled, rule.window_seconds, rule.label)

    def _current_window(self, key: tuple[str, str], rule: RateLimitRule, now: float) -> AttemptWindow | None:
        window = self._windows.get(key)
        if window and now - window.started_at >= rule.window_seconds:
            del self._windows[key]
            return None
        return window

    def check_and_consume(self, action: str, client_address: str) -> RateLimitDecision:
        """Check the limit for an attempt and count it if allowed.

        Args:
            action: Action kind, e.g. ``login``.
            client_address: Caller's network address.

        Returns:
            RateLimitDecision: ``allowed`` is False once the window is full,
            with ``retry_after`` seconds until it resets.
        """
        rule = self.rule_for(action)
        key = (action, client_address)

        with self._lock:
            now = self._clock()
            window = self._current_window(key, rule, now)

            if window is None:
                self._windows[key] = AttemptWindow(count=1, started_at=now)
                return RateLimitDecision(allowed=True, attempts=1, limit=rule.max_attempts)

            if window.count >= rule.max_attempts:
                retry_after = max(1, math.ceil(window.started_at + rule.window_seconds - now))
                return RateLimitDecision(
                    allowed=False,
                    attempts=window.count,
                    limit=rule.max_attempts,
                    retry_after=retry_after,
                    message=f"Too many {rule.label} attempts. Try again in {_format_cooldown(retry_after)}.",
                )

            window.count += 1
            return RateLimitDecision(allowed=True, attempts=window.count, limit=rule.max_attempts)

    def attempts(self, action: str, client_address: str) -> int:
        """Count attempts recorded in the current window."""
        rule = self.rule_for(action)
        with self._lock:
            window = self._current_window((action, client_address), rule, self._clock())
            return window.count if window else 0

    def progressive_delay(self, action: str, client_address: str) -> float:
        """Compute the artificial delay for the latest attempt.

        No delay for the first two attempts in a window, then 1s, 5s and a
        15s plateau.

        Returns:
            float: Delay in seconds.
        """
        count = self.attempts(action, client_address)
        if count <= 0:
            return 0.0
        index = min(count, len(PROGRESSIVE_DELAY_STEPS)) - 1
        return PROGRESSIVE_DELAY_STEPS[index]

    def reset(self, action: str, client_address: str) -> None:
        """Forget the counter for one pair (e.g. after a successful login)."""
        with self._lock:
            self._windows.pop((action, client_address), None)

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Rate limiter cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Rate limiter cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        """Background loop to cleanup expired windows."""
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            count = self.cleanup()
            if count > 0:
                logger.debug("Rate limiter cleaned up %d expired windows", count)

    def cleanup(self) -> int:
        """Remove windows that have fully elapsed.

        Returns:
            int: Number of removed windows.
        """
        removed = 0
        with self._lock:
            now = self._clock()
            for key in list(self._windows):
                rule = self.rule_for(key[0])
                if now - self._windows[key].started_at >= rule.window_seconds:
                    del self._windows[key]
                    removed += 1
        return removed

    def get_stats(self) -> dict:
        """Get limiter statistics for monitoring."""
        with self._lock:
            return {
                "active_windows": len(self._windows),
                "multiplier": self.multiplier,
            }


def _format_cooldown(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds} seconds"
    minutes = math.ceil(seconds / 60)
    return "1 minute" if minutes == 1 else f"{minutes} minutes"
