import pytest

from safetrail.detection.anomaly import DetectionConfig, LocationSample, ZoneVertex


@pytest.fixture
def default_config():
    """5分・10mのしきい値"""
    return DetectionConfig(inactivity_threshold_minutes=5, safe_zone_threshold_meters=10)


@pytest.fixture
def stationary_history():
    """同じ地点に約5分間とどまっている履歴"""
    return [
        LocationSample(0.0, 0.0, 0),
        LocationSample(0.0, 0.0, 299_000),
    ]


@pytest.fixture
def square_zone():
    """(0,0)-(1,1) の正方形の安全圏"""
    return [
        ZoneVertex(0.0, 0.0),
        ZoneVertex(0.0, 1.0),
        ZoneVertex(1.0, 1.0),
        ZoneVertex(1.0, 0.0),
    ]


@pytest.fixture
def inside_sample():
    return LocationSample(0.5, 0.5, 300_000)


@pytest.fixture
def outside_sample():
    return LocationSample(2.0, 2.0, 300_000)


@pytest.fixture
def mock_generator():
    """警告文生成器のモック"""

    class _Generator:
        def __init__(self):
            self.requests = []

        def generate_alert_message(self, request):
            self.requests.append(request)
            return "Test alert"

    return _Generator()
