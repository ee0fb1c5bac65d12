"""FastAPI app exposing SafeTrail tracking sessions and anomaly alerts."""

from collections import deque
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator

from safetrail.api.services.alerts import AlertService
from safetrail.api.services.llm import LLMService, create_llm_service
from safetrail.api.services.tracking import (
    OutOfOrderSampleError,
    SessionNotFoundError,
    TrackingStore,
    now_ms,
)
from safetrail.detection.anomaly import (
    DetectionConfig,
    LocationSample,
    ZoneVertex,
    evaluate,
)
from safetrail.watchers.logger import logger

# FastAPIアプリケーションのインスタンスを作成
app = FastAPI(
    title="SafeTrail",
    description="Live location sharing with inactivity and safe-zone alerts",
)

# グローバルな状態管理
STATE: dict[str, Any] = {
    "sessions": TrackingStore(),
    "llm_service": None,
    "alert_service": AlertService(),
    "last_alert": None,  # 最新の解析結果を保存
    "logs": deque(maxlen=100),  # ログを保存 (最大100件)
}

# --- ロギング ---


def log_message(message: str) -> None:
    """ロガーに出力し、ログキューにも追加する."""
    logger.info(message)
    STATE["logs"].append(message)


# --- Pydanticモデル定義 ---


class Location(BaseModel):
    """位置サンプル. timestamp_ms を省略するとサーバー時刻を使う."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timestamp_ms: int | None = None

    def to_sample(self) -> LocationSample:
        ts = now_ms() if self.timestamp_ms is None else self.timestamp_ms
        return LocationSample(self.latitude, self.longitude, ts)


class Vertex(BaseModel):
    """安全圏ポリゴンの頂点."""

    latitude: float
    longitude: float


class Thresholds(BaseModel):
    """検出しきい値（どちらも1以上）."""

    inactivity_threshold_minutes: float = 5.0
    safe_zone_threshold_meters: float = 10.0

    @field_validator("inactivity_threshold_minutes", "safe_zone_threshold_meters")
    @classmethod
    def must_be_at_least_one(cls, v: float) -> float:
        """しきい値は1以上（NaNも不可）"""
        if not v >= 1:
            msg = "threshold must be >= 1"
            raise ValueError(msg)
        return v

    def to_config(self) -> DetectionConfig:
        return DetectionConfig(
            inactivity_threshold_minutes=self.inactivity_threshold_minutes,
            safe_zone_threshold_meters=self.safe_zone_threshold_meters,
        )


class EvaluateRequest(Thresholds):
    """POST /anomaly/evaluate のリクエスト."""

    current: Location
    history: list[Location] = []
    safe_zone: list[Vertex] | None = None


class AnalyzeRequest(Thresholds):
    """POST /sessions/{code}/analyze のリクエスト."""

    safe_zone: list[Vertex] | None = None
    sender_name: str | None = None
    receiver_name: str | None = None
    zone_description: str | None = None


def _zone(vertices: list[Vertex] | None) -> list[ZoneVertex] | None:
    if vertices is None:
        return None
    return [ZoneVertex(v.latitude, v.longitude) for v in vertices]


# --- アプリケーションのライフサイクルイベント ---


# Deprecated on_event usage is temporarily retained for simplicity.
@app.on_event("startup")  # pyright: ignore[reportDeprecated]
async def startup_event() -> None:
    """アプリケーション起動時にLLMサービスを初期化."""
    try:
        service = create_llm_service()
    except RuntimeError as e:
        log_message(f"LLM Service disabled: {e}")
        return
    STATE["llm_service"] = service
    STATE["alert_service"] = AlertService(service)
    log_message(f"LLM Service Available: {service.is_available()}")


# --- APIエンドポイント定義 ---


@app.post("/sessions")
async def start_session(location: Location) -> dict[str, Any]:
    """送信者の共有セッションを開始し、追跡コードを発行する."""
    store: TrackingStore = STATE["sessions"]
    session = store.start(location.latitude, location.longitude, location.timestamp_ms)
    log_message(f"Session started: {session.code}")
    return {"ok": True, "code": session.code, "created_at_ms": session.created_at_ms}


@app.post("/sessions/{code}/locations")
async def push_location(code: str, location: Location) -> dict[str, Any]:
    """送信者の最新位置を追加する."""
    store: TrackingStore = STATE["sessions"]
    try:
        session = store.push_location(code, location.to_sample())
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="unknown or stopped session") from e
    except OutOfOrderSampleError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return {"ok": True, "code": session.code, "samples": len(session.history)}


@app.get("/sessions/{code}")
async def get_session(code: str) -> dict[str, Any]:
    """受信者向けにセッションの現在状態を返す."""
    store: TrackingStore = STATE["sessions"]
    try:
        return store.snapshot(code)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="unknown or stopped session") from e


@app.delete("/sessions/{code}")
async def stop_session(code: str) -> dict[str, Any]:
    """共有を終了する."""
    store: TrackingStore = STATE["sessions"]
    try:
        session = store.stop(code)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="unknown or stopped session") from e
    log_message(f"Session stopped: {session.code}")
    return {"ok": True, "code": session.code}


@app.post("/sessions/{code}/analyze")
def analyze_session(code: str, req: AnalyzeRequest) -> dict[str, Any]:
    """最新位置と履歴から異常を判定し、受信者向けの警告文を作る."""
    store: TrackingStore = STATE["sessions"]
    try:
        samples = store.samples(code)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="unknown or stopped session") from e

    # 最新サンプルが current、それ以前が history
    current, history = samples[-1], samples[:-1]
    alert_service: AlertService = STATE["alert_service"]
    result = alert_service.analyze(
        current,
        history,
        _zone(req.safe_zone),
        req.to_config(),
        sender_name=req.sender_name,
        receiver_name=req.receiver_name,
        zone_description=req.zone_description,
    )

    payload = result.to_dict()
    STATE["last_alert"] = payload
    log_message(
        f"Analysis for {code.upper()}: anomaly={result.verdict.anomaly_detected} "
        f"kinds={result.verdict.kind_names()} source={result.message_source}"
    )
    return payload


@app.post("/anomaly/evaluate")
async def evaluate_anomaly(req: EvaluateRequest) -> dict[str, Any]:
    """検出器だけを実行する（メッセージ生成なし）."""
    verdict = evaluate(
        req.current.to_sample(),
        [loc.to_sample() for loc in req.history],
        _zone(req.safe_zone),
        req.to_config(),
    )
    return verdict.to_dict()


@app.get("/status")
async def get_current_status() -> dict[str, Any]:
    """現在のシステム状態を取得する."""
    llm_service: LLMService | None = STATE["llm_service"]
    store: TrackingStore = STATE["sessions"]
    return {
        "llm_configured": llm_service is not None,
        "active_sessions": store.active_count(),
        "last_alert": STATE["last_alert"],
    }


# --- モニタリング用エンドポイント ---


@app.get("/api/monitoring_data")
async def get_monitoring_data() -> dict[str, Any]:
    """モニタリング用に最新データを提供する."""
    return {
        "last_alert": STATE["last_alert"],
        "logs": list(STATE["logs"]),
    }
