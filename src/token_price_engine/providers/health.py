"""Per-source health tracking with exponential backoff.

Each source adapter owns one HealthTracker. A failed request marks the
source down and starts a backoff window; while the window is open the
router skips the source without touching the network. Once the window
elapses, exactly one caller is admitted as the probe and every other
caller keeps skipping the source until that probe reports back: success
restores the source, failure doubles the window up to a cap.

A probe that never reports back (a cancelled task, say) holds the slot
only for ``probe_lease_seconds``; after that another caller may probe.

The transitions are pure functions over an immutable HealthState so they
can be tested with a fixed clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from token_price_engine.providers.models import Clock, now_utc

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_SEED_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 60.0
DEFAULT_PROBE_LEASE_SECONDS = 30.0


@dataclass(frozen=True)
class HealthState:
    """Snapshot of one source's health."""

    is_down: bool = False
    down_since: datetime | None = None
    backoff_seconds: float = DEFAULT_BACKOFF_SEED_SECONDS
    consecutive_failures: int = 0
    last_error: str | None = None
    probe_started_at: datetime | None = None

    @property
    def retry_at(self) -> datetime | None:
        if not self.is_down or self.down_since is None:
            return None
        return self.down_since + timedelta(seconds=self.backoff_seconds)

    @property
    def probing(self) -> bool:
        return self.probe_started_at is not None


def record_failure(
    state: HealthState,
    now: datetime,
    *,
    seed_seconds: float = DEFAULT_BACKOFF_SEED_SECONDS,
    max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS,
    error: str | None = None,
) -> HealthState:
    """Transition after a failed request.

    The first failure opens a window of ``seed_seconds``; every consecutive
    failure doubles it, never exceeding ``max_seconds``. Any probe in
    flight is finished.
    """
    if state.consecutive_failures == 0:
        backoff = seed_seconds
    else:
        backoff = state.backoff_seconds * 2
    return HealthState(
        is_down=True,
        down_since=now,
        backoff_seconds=min(backoff, max_seconds),
        consecutive_failures=state.consecutive_failures + 1,
        last_error=error,
    )


def record_success(
    state: HealthState,
    *,
    seed_seconds: float = DEFAULT_BACKOFF_SEED_SECONDS,
) -> HealthState:
    """Transition after a successful request."""
    if not state.is_down and state.consecutive_failures == 0 and not state.probing:
        return state
    return HealthState(backoff_seconds=seed_seconds)


def is_available(
    state: HealthState,
    now: datetime,
    *,
    probe_lease_seconds: float = DEFAULT_PROBE_LEASE_SECONDS,
) -> bool:
    """Check whether a request may be sent.

    Returns True when the source is up, or when it is down, the backoff
    window has elapsed and no other probe holds the slot.
    """
    if not state.is_down:
        return True
    if state.probe_started_at is not None:
        return now >= state.probe_started_at + timedelta(seconds=probe_lease_seconds)
    retry_at = state.retry_at
    return retry_at is None or now >= retry_at


def begin_probe(state: HealthState, now: datetime) -> HealthState:
    """Claim the probe slot of a down source. Up sources are unchanged."""
    if not state.is_down:
        return state
    return replace(state, probe_started_at=now)


class HealthTracker:
    """Mutable holder for a source's HealthState.

    ``is_healthy`` only reads the state. ``allow_request`` is what callers
    use before sending a request: it admits a single probe per elapsed
    window.
    """

    def __init__(
        self,
        name: str,
        *,
        seed_seconds: float = DEFAULT_BACKOFF_SEED_SECONDS,
        max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS,
        probe_lease_seconds: float = DEFAULT_PROBE_LEASE_SECONDS,
        clock: Clock = now_utc,
    ) -> None:
        self.name = name
        self._seed_seconds = seed_seconds
        self._max_seconds = max_seconds
        self._probe_lease_seconds = probe_lease_seconds
        self._clock = clock
        self._state = HealthState(backoff_seconds=seed_seconds)

    @property
    def state(self) -> HealthState:
        return self._state

    def is_healthy(self) -> bool:
        return is_available(
            self._state, self._clock(), probe_lease_seconds=self._probe_lease_seconds
        )

    def allow_request(self) -> bool:
        now = self._clock()
        if not is_available(self._state, now, probe_lease_seconds=self._probe_lease_seconds):
            return False
        if self._state.is_down:
            self._state = begin_probe(self._state, now)
            logger.info("Source %s backoff elapsed, sending probe", self.name)
        return True

    def record_failure(self, error: BaseException | str | None = None) -> HealthState:
        message = str(error) if error is not None else None
        self._state = record_failure(
            self._state,
            self._clock(),
            seed_seconds=self._seed_seconds,
            max_seconds=self._max_seconds,
            error=message,
        )
        logger.warning(
            "Source %s marked down for %.1fs (failures=%d): %s",
            self.name,
            self._state.backoff_seconds,
            self._state.consecutive_failures,
            message,
        )
        return self._state

    def record_success(self) -> HealthState:
        was_down = self._state.is_down
        self._state = record_success(self._state, seed_seconds=self._seed_seconds)
        if was_down:
            logger.info("Source %s recovered", self.name)
        return self._state
