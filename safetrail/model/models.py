__all__ = [
    "AlertResultModel",
    "LocationModel",
    "TrackingSessionModel",
    "VerdictModel",
]


from typing import TypedDict


class LocationModel(TypedDict):
    """位置サンプル（APIのJSON形式）."""

    latitude: float
    longitude: float
    timestamp_ms: int


class TrackingSessionModel(TypedDict):
    """GET /sessions/{code} のレスポンス."""

    code: str
    active: bool
    created_at_ms: int
    last_location: LocationModel | None
    history: list[LocationModel]


class VerdictModel(TypedDict):
    """Anomaly verdict as serialized by the API."""

    anomaly_detected: bool
    kinds: list[str]  # "inactivity", "out_of_safe_zone"
    inactivity_duration_minutes: int | None
    is_outside_safe_zone: bool


class AlertResultModel(TypedDict):
    """POST /sessions/{code}/analyze のレスポンス."""

    verdict: VerdictModel
    alert_message: str
    message_source: str  # "generator", "fallback"
    generation_error: str | None
