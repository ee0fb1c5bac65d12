import platform
import sys
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from safetrail.model.models import AlertResultModel
from safetrail.watchers.logger import logger

if sys.platform == "win32":
    from win10toast import ToastNotifier  # type: ignore[import-untyped, unused-ignore]

APP_TITLE = "SafeTrail"


class NotificationLevel(Enum):
    """Notification severity levels used by the service."""

    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"


@dataclass
class NotificationConfig:
    """Configuration for :class:`NotificationService`."""

    sound: bool = False
    toast_duration: int = 5


class NotificationService:
    """Receiver-side notification sink with history tracking."""

    def __init__(self, config: NotificationConfig | None = None) -> None:
        self.platform = platform.system()
        self.config = config or NotificationConfig()
        self._history: list[dict[str, Any]] = []

    def notify(
        self,
        title: str,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        *,
        sound: bool | None = None,
    ) -> bool:
        """Display a notification and record it.

        On Windows a toast is shown. Elsewhere the notification is only
        logged and recorded, and ``False`` is returned.
        """
        sound = self.config.sound if sound is None else sound
        delivered = False
        if self.platform == "Windows" and sys.platform == "win32":
            notifier = ToastNotifier()
            notifier.show_toast(title, message, duration=self.config.toast_duration)  # pyright: ignore[reportUnknownMemberType]
            delivered = True
        logger.info("[%s] %s: %s", level.value.upper(), title, message)
        self._history.append(
            {
                "title": title,
                "message": message,
                "level": level.value,
                "sound": sound,
                "timestamp": time.time(),
                "delivered": delivered,
            },
        )
        return delivered

    def get_notification_history(self) -> list[dict[str, Any]]:
        """Return a copy of the notification history."""
        return list(self._history)


_default_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Shared service used by the module-level helpers."""
    global _default_service  # noqa: PLW0603
    if _default_service is None:
        _default_service = NotificationService()
    return _default_service


def notify(
    title: str,
    message: str,
    level: NotificationLevel = NotificationLevel.INFO,
    *,
    sound: bool | None = None,
) -> bool:
    """Wrap :meth:`NotificationService.notify` for convenience."""
    return get_notification_service().notify(title, message, level, sound=sound)


def notify_anomaly_alert(result: AlertResultModel, code: str) -> bool:
    """Alert the receiver about a detected anomaly.

    Quiet results (no anomaly) are not shown.
    """
    verdict = result["verdict"]
    if not verdict["anomaly_detected"]:
        return False

    kinds = verdict["kinds"]
    if "out_of_safe_zone" in kinds and "inactivity" in kinds:
        headline = "Güvenli alan dışında ve hareketsiz"
    elif "out_of_safe_zone" in kinds:
        headline = "Güvenli alan dışında"
    else:
        headline = "Uzun süre hareketsiz"

    return notify(
        f"{APP_TITLE} - {headline} ({code})",
        result["alert_message"],
        NotificationLevel.URGENT,
        sound=True,
    )


def notify_connection_lost(code: str) -> bool:
    """便利関数: 送信者が共有を終了した."""
    return notify(
        f"{APP_TITLE} - Bağlantı Kesildi",
        f"{code}: Verici yayını durdurdu.",
        NotificationLevel.WARNING,
    )
