"""In-memory tracking sessions keyed by a short tracking code."""

from __future__ import annotations

import secrets
import threading
import time
from collections import deque
from dataclasses import dataclass, field

from safetrail.detection.anomaly import LocationSample

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
DEFAULT_MAX_HISTORY = 1000


class SessionNotFoundError(KeyError):
    """No active session exists for the tracking code."""


class OutOfOrderSampleError(ValueError):
    """A pushed sample is older than the newest stored sample."""


def generate_tracking_code(length: int = CODE_LENGTH) -> str:
    """Random code without look-alike characters (no I, O, 0, 1)."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TrackingSession:
    """One sender's sharing session."""

    code: str
    created_at_ms: int
    history: deque[LocationSample] = field(default_factory=deque)
    active: bool = True

    @property
    def last_location(self) -> LocationSample | None:
        return self.history[-1] if self.history else None

    def snapshot(self) -> dict[str, object]:
        last = self.last_location
        return {
            "code": self.code,
            "active": self.active,
            "created_at_ms": self.created_at_ms,
            "last_location": _sample_dict(last) if last else None,
            "history": [_sample_dict(s) for s in self.history],
        }


def _sample_dict(sample: LocationSample) -> dict[str, object]:
    return {
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "timestamp_ms": sample.timestamp_ms,
    }


class TrackingStore:
    """Thread-safe session registry.

    History is kept oldest first and bounded to ``max_history`` samples.
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        self.max_history = max_history
        self._sessions: dict[str, TrackingSession] = {}
        self._lock = threading.Lock()

    def start(
        self,
        latitude: float,
        longitude: float,
        timestamp_ms: int | None = None,
    ) -> TrackingSession:
        """Open a session with a fresh code and its first location."""
        ts = now_ms() if timestamp_ms is None else timestamp_ms
        with self._lock:
            code = generate_tracking_code()
            while code in self._sessions:
                code = generate_tracking_code()
            session = TrackingSession(
                code=code,
                created_at_ms=ts,
                history=deque(maxlen=self.max_history),
            )
            session.history.append(LocationSample(latitude, longitude, ts))
            self._sessions[code] = session
            return session

    def _active(self, code: str) -> TrackingSession:
        session = self._sessions.get(normalize_code(code))
        if session is None or not session.active:
            msg = f"no active session for code {code!r}"
            raise SessionNotFoundError(msg)
        return session

    def get(self, code: str) -> TrackingSession:
        with self._lock:
            return self._active(code)

    def snapshot(self, code: str) -> dict[str, object]:
        with self._lock:
            return self._active(code).snapshot()

    def samples(self, code: str) -> list[LocationSample]:
        """Copy of the session history, oldest first."""
        with self._lock:
            return list(self._active(code).history)

    def push_location(self, code: str, sample: LocationSample) -> TrackingSession:
        with self._lock:
            session = self._active(code)
            last = session.last_location
            if last is not None and sample.timestamp_ms < last.timestamp_ms:
                msg = (
                    f"sample at {sample.timestamp_ms} is older than "
                    f"the last stored sample at {last.timestamp_ms}"
                )
                raise OutOfOrderSampleError(msg)
            session.history.append(sample)
            return session

    def stop(self, code: str) -> TrackingSession:
        """End sharing. The code stays reserved but its history is dropped."""
        with self._lock:
            session = self._active(code)
            session.active = False
            session.history.clear()
            return session

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.active)
