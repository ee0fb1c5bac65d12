"""Inactivity and safe-zone anomaly detection.

- evaluate - pure check of one location sample against its recent history.
- LocationSample / ZoneVertex - input types.
- DetectionConfig - per-call thresholds, validated on construction.
- AnomalyVerdict - the structured result handed to the alert generator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from safetrail.detection.geo import is_valid_polygon, path_length_m, point_in_polygon

if TYPE_CHECKING:
    from collections.abc import Sequence

MS_PER_MINUTE = 60_000
MIN_THRESHOLD = 1.0
DEFAULT_SAFE_ZONE_THRESHOLD_M = 10.0


class AnomalyKind(Enum):
    """Kinds of anomaly the detector can report."""

    INACTIVITY = "inactivity"
    OUT_OF_SAFE_ZONE = "out_of_safe_zone"


class InvalidDetectionConfigError(ValueError):
    """Raised when a threshold is below its documented minimum."""


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single location fix.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        timestamp_ms: Unix epoch milliseconds.

    """

    latitude: float
    longitude: float
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class ZoneVertex:
    """Safe-zone polygon vertex."""

    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class DetectionConfig:
    """Thresholds for one evaluation.

    ``safe_zone_threshold_meters`` is the minimum cumulative movement inside
    the inactivity window; less than that counts as standing still.
    """

    inactivity_threshold_minutes: float
    safe_zone_threshold_meters: float = DEFAULT_SAFE_ZONE_THRESHOLD_M

    def __post_init__(self) -> None:
        if not self.inactivity_threshold_minutes >= MIN_THRESHOLD:
            msg = (
                "inactivity_threshold_minutes must be >= 1, "
                f"got {self.inactivity_threshold_minutes}"
            )
            raise InvalidDetectionConfigError(msg)
        if not self.safe_zone_threshold_meters >= MIN_THRESHOLD:
            msg = (
                "safe_zone_threshold_meters must be >= 1, "
                f"got {self.safe_zone_threshold_meters}"
            )
            raise InvalidDetectionConfigError(msg)

    @property
    def window_ms(self) -> float:
        return self.inactivity_threshold_minutes * MS_PER_MINUTE


@dataclass(frozen=True, slots=True)
class AnomalyVerdict:
    """Result of :func:`evaluate`."""

    kinds: frozenset[AnomalyKind] = frozenset()
    inactivity_duration_minutes: int | None = None
    is_outside_safe_zone: bool = False

    @property
    def anomaly_detected(self) -> bool:
        return bool(self.kinds)

    def kind_names(self) -> list[str]:
        """Kind values in a stable order, for JSON and prompts."""
        return [kind.value for kind in AnomalyKind if kind in self.kinds]

    def to_dict(self) -> dict[str, object]:
        return {
            "anomaly_detected": self.anomaly_detected,
            "kinds": self.kind_names(),
            "inactivity_duration_minutes": self.inactivity_duration_minutes,
            "is_outside_safe_zone": self.is_outside_safe_zone,
        }


def _inactivity_minutes(
    current: LocationSample,
    history: Sequence[LocationSample],
    config: DetectionConfig,
) -> int | None:
    """Return the idle duration in minutes, or None if not inactive."""
    window_ms = config.window_ms
    relevant = [
        sample
        for sample in history
        if current.timestamp_ms - sample.timestamp_ms <= window_ms
    ]
    relevant.append(current)
    if len(relevant) < 2:  # noqa: PLR2004
        return None

    span_ms = relevant[-1].timestamp_ms - relevant[0].timestamp_ms
    moved_m = path_length_m(relevant)
    if moved_m < config.safe_zone_threshold_meters and span_ms >= window_ms:
        return int(span_ms // MS_PER_MINUTE)
    return None


def evaluate(
    current: LocationSample,
    history: Sequence[LocationSample],
    safe_zone: Sequence[ZoneVertex] | None,
    config: DetectionConfig,
) -> AnomalyVerdict:
    """Check the current sample for inactivity and for leaving the safe zone.

    Args:
        current: Newest sample; must not be older than the last history entry.
        history: Earlier samples, oldest first. Order is trusted as given.
        safe_zone: Polygon vertices. None or fewer than 3 skips the zone check.
        config: Thresholds.

    Returns:
        AnomalyVerdict: every kind that fired, with supporting figures.

    """
    kinds: set[AnomalyKind] = set()

    idle_minutes = _inactivity_minutes(current, history, config)
    if idle_minutes is not None:
        kinds.add(AnomalyKind.INACTIVITY)

    outside = False
    if safe_zone is not None and is_valid_polygon(safe_zone):
        outside = not point_in_polygon(current.latitude, current.longitude, safe_zone)
        if outside:
            kinds.add(AnomalyKind.OUT_OF_SAFE_ZONE)

    return AnomalyVerdict(
        kinds=frozenset(kinds),
        inactivity_duration_minutes=idle_minutes,
        is_outside_safe_zone=outside,
    )
