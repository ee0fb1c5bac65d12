"""Receiver-side poll loop: fetch the session, ask for analysis, notify."""

from __future__ import annotations

import argparse
import os
import time
from typing import Any

import requests

from safetrail.model.models import AlertResultModel, TrackingSessionModel
from safetrail.ui.notifications import notify_anomaly_alert, notify_connection_lost
from safetrail.watchers.logger import logger

# HTTP status codes
HTTP_OK = 200
HTTP_NOT_FOUND = 404

DEFAULT_API_URL = "http://127.0.0.1:5577"
DEFAULT_INTERVAL = 5.0


class SessionEndedError(Exception):
    """The tracking code no longer refers to an active session."""


class ReceiverPoller:
    """一定間隔でセッションを取得し、異常があれば通知するクラス."""

    def __init__(  # noqa: PLR0913
        self,
        code: str,
        api_url: str = DEFAULT_API_URL,
        interval: float = DEFAULT_INTERVAL,
        analysis: dict[str, Any] | None = None,
        max_errors: int = 5,
        timeout: float = 20.0,
    ) -> None:
        """
        Args:
            code: 追跡コード
            api_url: SafeTrail APIのベースURL
            interval: ポーリング間隔（秒）
            analysis: /analyze に送るしきい値・安全圏・名前
            max_errors: 連続エラーの上限
            timeout: HTTPタイムアウト(秒)

        """
        self.code = code.strip().upper()
        self.api_url = api_url.rstrip("/")
        self.interval = interval
        self.analysis = analysis or {
            "inactivity_threshold_minutes": 5,
            "safe_zone_threshold_meters": 15,
            "sender_name": "Yakınınız",
        }
        self.max_errors = max_errors
        self.timeout = timeout
        self.running = False

        # 統計情報
        self.stats: dict[str, Any] = {
            "polls": 0,
            "alerts": 0,
            "consecutive_errors": 0,
            "last_result": None,
        }

    @property
    def session_url(self) -> str:
        return f"{self.api_url}/sessions/{self.code}"

    def fetch_session(self) -> TrackingSessionModel:
        """セッションの現在状態を取得."""
        response = requests.get(self.session_url, timeout=self.timeout)
        if response.status_code == HTTP_NOT_FOUND:
            raise SessionEndedError(self.code)
        response.raise_for_status()
        session: TrackingSessionModel = response.json()
        return session

    def request_analysis(self) -> AlertResultModel:
        """異常判定と警告文の生成を依頼."""
        response = requests.post(
            f"{self.session_url}/analyze", json=self.analysis, timeout=self.timeout
        )
        if response.status_code == HTTP_NOT_FOUND:
            raise SessionEndedError(self.code)
        response.raise_for_status()
        result: AlertResultModel = response.json()
        return result

    def poll_once(self) -> AlertResultModel:
        """1回分のポーリング. 異常があれば通知する."""
        session = self.fetch_session()
        last = session["last_location"]
        if last is not None:
            logger.info(
                "%s at %.5f, %.5f", self.code, last["latitude"], last["longitude"]
            )

        result = self.request_analysis()
        self.stats["polls"] += 1
        self.stats["last_result"] = result
        if result["verdict"]["anomaly_detected"]:
            self.stats["alerts"] += 1
            notify_anomaly_alert(result, self.code)
        return result

    def run(self, max_polls: int | None = None) -> None:
        """セッションが終わるか、エラーが続くまでポーリングする."""
        self.running = True
        polls = 0
        while self.running:
            try:
                self.poll_once()
            except SessionEndedError:
                logger.info("session %s ended", self.code)
                notify_connection_lost(self.code)
                break
            except requests.RequestException as e:
                self.stats["consecutive_errors"] += 1
                logger.warning(
                    "poll failed (%d/%d): %s",
                    self.stats["consecutive_errors"],
                    self.max_errors,
                    e,
                )
                if self.stats["consecutive_errors"] >= self.max_errors:
                    logger.error("too many consecutive errors, stopping")
                    break
            else:
                self.stats["consecutive_errors"] = 0

            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            time.sleep(self.interval)
        self.running = False

    def stop(self) -> None:
        self.running = False


def check_api_availability(api_url: str = DEFAULT_API_URL) -> bool:
    """APIの可用性をチェック."""
    try:
        response = requests.get(f"{api_url.rstrip('/')}/status", timeout=3)
    except requests.RequestException:
        return False
    return response.status_code == HTTP_OK


def main(argv: list[str] | None = None) -> int:
    """メイン関数."""
    parser = argparse.ArgumentParser(description="Watch a SafeTrail tracking code")
    parser.add_argument("code", help="6-character tracking code")
    parser.add_argument(
        "--api-url", default=os.getenv("SAFETRAIL_API_URL", DEFAULT_API_URL)
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=float(os.getenv("SAFETRAIL_POLL_INTERVAL", str(DEFAULT_INTERVAL))),
    )
    parser.add_argument("--inactivity-minutes", type=float, default=5.0)
    parser.add_argument("--movement-meters", type=float, default=15.0)
    parser.add_argument("--sender-name", default="Yakınınız")
    args = parser.parse_args(argv)

    if not check_api_availability(args.api_url):
        logger.error("SafeTrail API is not reachable at %s", args.api_url)
        return 1

    poller = ReceiverPoller(
        args.code,
        api_url=args.api_url,
        interval=args.interval,
        analysis={
            "inactivity_threshold_minutes": args.inactivity_minutes,
            "safe_zone_threshold_meters": args.movement_meters,
            "sender_name": args.sender_name,
        },
    )
    poller.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
