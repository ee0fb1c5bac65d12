from unittest.mock import Mock, patch

import pytest
import requests

from safetrail.watchers import receiver
from safetrail.watchers.receiver import (
    ReceiverPoller,
    SessionEndedError,
    check_api_availability,
)

SESSION = {
    "code": "ABC234",
    "active": True,
    "created_at_ms": 0,
    "last_location": {"latitude": 41.0, "longitude": 29.0, "timestamp_ms": 0},
    "history": [{"latitude": 41.0, "longitude": 29.0, "timestamp_ms": 0}],
}


def _response(status_code=200, body=None):
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body
    return mock_response


def _alert(anomaly):
    return {
        "verdict": {
            "anomaly_detected": anomaly,
            "kinds": ["inactivity"] if anomaly else [],
            "inactivity_duration_minutes": 5 if anomaly else None,
            "is_outside_safe_zone": False,
        },
        "alert_message": "Mesaj",
        "message_source": "fallback",
        "generation_error": None,
    }


class TestReceiverPoller:
    """受信側ポーラーの動作テスト"""

    @pytest.fixture
    def poller(self):
        return ReceiverPoller("abc234", api_url="http://api:5577/", interval=0)

    def test_initialization(self, poller):
        assert poller.code == "ABC234"
        assert poller.session_url == "http://api:5577/sessions/ABC234"
        assert poller.analysis["inactivity_threshold_minutes"] == 5
        assert poller.analysis["safe_zone_threshold_meters"] == 15

    def test_poll_once_notifies_on_anomaly(self, poller):
        with (
            patch("requests.get", return_value=_response(body=SESSION)),
            patch("requests.post", return_value=_response(body=_alert(True))) as mock_post,
            patch.object(receiver, "notify_anomaly_alert") as mock_notify,
        ):
            result = poller.poll_once()

        assert result["verdict"]["anomaly_detected"] is True
        mock_notify.assert_called_once_with(result, "ABC234")
        assert mock_post.call_args.args[0] == "http://api:5577/sessions/ABC234/analyze"
        assert poller.stats["alerts"] == 1
        assert poller.stats["polls"] == 1

    def test_poll_once_quiet(self, poller):
        with (
            patch("requests.get", return_value=_response(body=SESSION)),
            patch("requests.post", return_value=_response(body=_alert(False))),
            patch.object(receiver, "notify_anomaly_alert") as mock_notify,
        ):
            poller.poll_once()

        mock_notify.assert_not_called()
        assert poller.stats["alerts"] == 0

    def test_session_gone(self, poller):
        with (
            patch("requests.get", return_value=_response(status_code=404)),
            pytest.raises(SessionEndedError),
        ):
            poller.fetch_session()

    def test_run_stops_when_session_ends(self, poller):
        with (
            patch("requests.get", return_value=_response(status_code=404)),
            patch.object(receiver, "notify_connection_lost") as mock_lost,
        ):
            poller.run()

        mock_lost.assert_called_once_with("ABC234")
        assert poller.running is False

    def test_run_stops_after_consecutive_errors(self):
        poller = ReceiverPoller("ABC234", interval=0, max_errors=3)

        with patch("requests.get", side_effect=requests.ConnectionError("down")):
            poller.run()

        assert poller.stats["consecutive_errors"] == 3

    def test_run_respects_max_polls(self, poller):
        with (
            patch("requests.get", return_value=_response(body=SESSION)),
            patch("requests.post", return_value=_response(body=_alert(False))),
            patch("time.sleep"),
        ):
            poller.run(max_polls=2)

        assert poller.stats["polls"] == 2
        assert poller.stats["consecutive_errors"] == 0


class TestApiAvailability:
    """APIの可用性チェック"""

    def test_available(self):
        with patch("requests.get", return_value=_response()) as mock_get:
            assert check_api_availability("http://api:5577/") is True
            mock_get.assert_called_once_with("http://api:5577/status", timeout=3)

    def test_unreachable(self):
        with patch("requests.get", side_effect=requests.ConnectionError()):
            assert check_api_availability() is False

    def test_main_exits_when_api_down(self):
        with patch.object(receiver, "check_api_availability", return_value=False):
            assert receiver.main(["ABC234"]) == 1
