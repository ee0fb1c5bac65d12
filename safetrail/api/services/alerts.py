"""Turn anomaly verdicts into receiver-facing alert messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from safetrail.api.services.llm import AlertGenerationError, AlertMessageRequest
from safetrail.detection.anomaly import evaluate
from safetrail.watchers.logger import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from safetrail.api.services.llm import AlertTextGenerator
    from safetrail.detection.anomaly import (
        AnomalyVerdict,
        DetectionConfig,
        LocationSample,
        ZoneVertex,
    )

# Placeholder until zones carry their own names.
DEFAULT_ZONE_DESCRIPTION = "belirlenen güvenli alan"
DEFAULT_SUBJECT = "Takip ettiğiniz kişi"


@dataclass(frozen=True)
class AlertResult:
    """Verdict plus the message shown to the receiver."""

    verdict: AnomalyVerdict
    alert_message: str
    message_source: Literal["generator", "fallback"]
    generation_error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "verdict": self.verdict.to_dict(),
            "alert_message": self.alert_message,
            "message_source": self.message_source,
            "generation_error": self.generation_error,
        }


def format_display_location(sample: LocationSample) -> str:
    return f"{sample.latitude:.4f} N, {sample.longitude:.4f} E"


def build_alert_request(
    verdict: AnomalyVerdict,
    current: LocationSample,
    *,
    sender_name: str | None = None,
    receiver_name: str | None = None,
    zone_description: str | None = None,
) -> AlertMessageRequest:
    """Build the generator payload; the zone description is only sent when outside."""
    description = None
    if verdict.is_outside_safe_zone:
        description = zone_description or DEFAULT_ZONE_DESCRIPTION
    return AlertMessageRequest(
        display_location=format_display_location(current),
        anomaly_detected=verdict.anomaly_detected,
        kinds=verdict.kinds,
        is_outside_safe_zone=verdict.is_outside_safe_zone,
        inactivity_duration_minutes=verdict.inactivity_duration_minutes,
        zone_description=description,
        sender_name=sender_name,
        receiver_name=receiver_name,
    )


def render_fallback_message(request: AlertMessageRequest) -> str:
    """Templated Turkish message built from the verdict fields alone."""
    subject = request.sender_name or DEFAULT_SUBJECT
    if not request.anomaly_detected:
        return (
            f"{subject} şu anda: {request.display_location}. "
            "Tüm veriler normal görünüyor, kişi güvende."
        )

    parts = [f"UYARI: {subject} şu anda: {request.display_location}."]
    if request.inactivity_duration_minutes is not None:
        parts.append(
            f"Yaklaşık {request.inactivity_duration_minutes} dakikadır bu konumda "
            "önemli bir hareketlilik olmadan duruyor."
        )
    if request.is_outside_safe_zone:
        zone = request.zone_description or DEFAULT_ZONE_DESCRIPTION
        parts.append(f"Bu konum, {zone} dışındadır.")
    parts.append("Lütfen hemen kontrol edin.")
    return " ".join(parts)


class AlertService:
    """Runs the detector and asks the generator for the alert text.

    The verdict is never changed by the generator. When the generator is
    missing or fails, the templated message is used and the failure is
    reported in ``AlertResult.generation_error``.
    """

    def __init__(self, generator: AlertTextGenerator | None = None) -> None:
        self.generator = generator

    def analyze(  # noqa: PLR0913
        self,
        current: LocationSample,
        history: Sequence[LocationSample],
        safe_zone: Sequence[ZoneVertex] | None,
        config: DetectionConfig,
        *,
        sender_name: str | None = None,
        receiver_name: str | None = None,
        zone_description: str | None = None,
    ) -> AlertResult:
        verdict = evaluate(current, history, safe_zone, config)
        request = build_alert_request(
            verdict,
            current,
            sender_name=sender_name,
            receiver_name=receiver_name,
            zone_description=zone_description,
        )

        if self.generator is None:
            return AlertResult(
                verdict=verdict,
                alert_message=render_fallback_message(request),
                message_source="fallback",
                generation_error="no text generator configured",
            )

        try:
            message = self.generator.generate_alert_message(request)
        except AlertGenerationError as e:
            logger.warning("alert generation failed: %s", e)
            return AlertResult(
                verdict=verdict,
                alert_message=render_fallback_message(request),
                message_source="fallback",
                generation_error=str(e),
            )

        return AlertResult(
            verdict=verdict,
            alert_message=message,
            message_source="generator",
        )
