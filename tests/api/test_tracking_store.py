import pytest

from safetrail.api.services.tracking import (
    CODE_ALPHABET,
    OutOfOrderSampleError,
    SessionNotFoundError,
    TrackingStore,
    generate_tracking_code,
)
from safetrail.detection.anomaly import LocationSample


class TestTrackingCode:
    """追跡コード生成のテスト"""

    def test_length_and_alphabet(self):
        for _ in range(50):
            code = generate_tracking_code()
            assert len(code) == 6
            assert set(code) <= set(CODE_ALPHABET)

    def test_no_ambiguous_characters(self):
        for ch in "IO01":
            assert ch not in CODE_ALPHABET


class TestTrackingStore:
    """セッションストアのテスト"""

    @pytest.fixture
    def store(self):
        return TrackingStore(max_history=3)

    def test_start_records_first_location(self, store):
        session = store.start(41.0, 29.0, timestamp_ms=1_000)

        assert session.active is True
        assert session.created_at_ms == 1_000
        assert session.last_location == LocationSample(41.0, 29.0, 1_000)
        assert store.active_count() == 1

    def test_lookup_is_case_insensitive(self, store):
        session = store.start(41.0, 29.0, timestamp_ms=1_000)

        assert store.get(session.code.lower()) is session
        assert store.get(f"  {session.code} ") is session

    def test_push_appends_in_order(self, store):
        code = store.start(41.0, 29.0, timestamp_ms=1_000).code

        store.push_location(code, LocationSample(41.1, 29.1, 2_000))

        assert [s.timestamp_ms for s in store.samples(code)] == [1_000, 2_000]

    def test_equal_timestamp_is_accepted(self, store):
        code = store.start(41.0, 29.0, timestamp_ms=1_000).code

        store.push_location(code, LocationSample(41.0, 29.0, 1_000))

        assert len(store.samples(code)) == 2

    def test_out_of_order_rejected(self, store):
        code = store.start(41.0, 29.0, timestamp_ms=5_000).code

        with pytest.raises(OutOfOrderSampleError):
            store.push_location(code, LocationSample(41.0, 29.0, 4_999))

    def test_history_is_bounded(self, store):
        code = store.start(0.0, 0.0, timestamp_ms=0).code
        for ts in (1, 2, 3, 4):
            store.push_location(code, LocationSample(0.0, 0.0, ts))

        # 最新3件だけ残る
        assert [s.timestamp_ms for s in store.samples(code)] == [2, 3, 4]

    def test_stop_hides_session(self, store):
        code = store.start(0.0, 0.0, timestamp_ms=0).code

        store.stop(code)

        assert store.active_count() == 0
        with pytest.raises(SessionNotFoundError):
            store.get(code)
        with pytest.raises(SessionNotFoundError):
            store.push_location(code, LocationSample(0.0, 0.0, 1))

    def test_stop_drops_history(self, store):
        """停止後は位置履歴を保持しない"""
        code = store.start(0.0, 0.0, timestamp_ms=0).code
        store.push_location(code, LocationSample(0.001, 0.0, 1_000))

        session = store.stop(code)

        assert len(session.history) == 0
        assert session.last_location is None

    def test_unknown_code(self, store):
        with pytest.raises(SessionNotFoundError):
            store.snapshot("ZZZZZZ")

    def test_snapshot(self, store):
        code = store.start(41.0, 29.0, timestamp_ms=1_000).code

        snap = store.snapshot(code)

        assert snap["code"] == code
        assert snap["active"] is True
        assert snap["last_location"] == {
            "latitude": 41.0,
            "longitude": 29.0,
            "timestamp_ms": 1_000,
        }
        assert len(snap["history"]) == 1
