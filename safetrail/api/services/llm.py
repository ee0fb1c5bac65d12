import json
import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from safetrail.detection.anomaly import AnomalyKind
from safetrail.watchers.logger import logger

HTTP_OK = 200
MAX_DISPLAY_NAME = 40


class AlertGenerationError(RuntimeError):
    """The text generator could not produce a usable alert message."""


@dataclass(frozen=True)
class AlertMessageRequest:
    """Structured input for the alert text generator."""

    display_location: str
    anomaly_detected: bool
    kinds: frozenset[AnomalyKind] = frozenset()
    is_outside_safe_zone: bool = False
    inactivity_duration_minutes: int | None = None
    zone_description: str | None = None
    sender_name: str | None = None
    receiver_name: str | None = None


class AlertTextGenerator(Protocol):
    """Anything that turns an AlertMessageRequest into display text."""

    def generate_alert_message(self, request: AlertMessageRequest) -> str: ...


class LLMService:
    """OpenAI互換APIクライアント（LM Studio + Gemma 3 4B等に対応）."""

    def __init__(
        self,
        base_url: str,
        model_name: str,
        timeout: float = 20.0,
    ) -> None:
        """初期化

        Args:
        base_url: OpenAI互換APIのベースURL（例: http://127.0.0.1:1234）
        model_name: 使用するモデル名（例: google/gemma-3-4b）
        timeout: APIタイムアウト(秒)

        """
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.timeout = timeout
        self.chat_url = f"{self.base_url}/v1/chat/completions"

        # システムプロンプト
        self.system_prompt = """
You generate urgent alerts for a receiver who is tracking a visually impaired
person. Summarize the situation in clear, natural, actionable Turkish.

The anomaly flags you receive were computed by the system and are final.
If an anomaly is reported, write a short urgent warning that asks for quick
action. If not, write a short confirmation that the person appears safe.

Return ONLY a JSON object with exactly this key:
- alertMessage: the message text (max 300 chars)
""".strip()

        # 最後のAPI呼び出し時刻（レート制限用）
        self.last_call_time: float = 0.0
        self.min_call_interval = 1.0  # 最小呼び出し間隔（秒）

    def is_available(self) -> bool:
        """LLMサービスが利用可能かチェック."""
        try:
            response = requests.get(f"{self.base_url}/v1/models", timeout=5)
        except requests.RequestException:
            return False
        else:
            status_code: int = response.status_code
            return status_code == HTTP_OK

    def _rate_limit(self) -> None:
        """レート制限を適用."""
        now = time.time()
        elapsed = now - self.last_call_time
        if elapsed < self.min_call_interval:
            time.sleep(self.min_call_interval - elapsed)
        self.last_call_time = time.time()

    def _build_context_prompt(self, request: AlertMessageRequest) -> str:
        """検出結果からコンテキストプロンプトを構築."""
        sender = (request.sender_name or "")[:MAX_DISPLAY_NAME]
        receiver = (request.receiver_name or "")[:MAX_DISPLAY_NAME]
        kinds = [kind.value for kind in AnomalyKind if kind in request.kinds]

        if request.inactivity_duration_minutes is not None:
            inactivity_desc = (
                f"no significant movement for about "
                f"{request.inactivity_duration_minutes} min"
            )
        else:
            inactivity_desc = "moving normally"

        if request.is_outside_safe_zone:
            zone_desc = "OUTSIDE the safe zone"
            if request.zone_description:
                zone_desc += f" ({request.zone_description})"
        else:
            zone_desc = "inside the safe zone or no zone defined"

        return f"""
Tracked person: {sender or "unnamed"}
Receiver: {receiver or "unnamed"}
Current location: {request.display_location}
Movement: {inactivity_desc}
Safe zone: {zone_desc}
Anomaly detected: {"yes" if request.anomaly_detected else "no"}
Anomaly types: {", ".join(kinds) if kinds else "none"}

Write the alert message now.
""".strip()

    def generate_alert_message(self, request: AlertMessageRequest) -> str:
        """検出結果から受信者向けの警告メッセージを生成.

        Args:
            request: 検出結果と表示用の文字列

        Returns:
            str: 生成されたメッセージ

        Raises:
            AlertGenerationError: LLMが利用できない、または有効な応答がない場合

        """
        if not self.is_available():
            msg = "LLM unavailable"
            raise AlertGenerationError(msg)

        # レート制限適用
        self._rate_limit()

        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": self._build_context_prompt(request)},
            ],
            "temperature": 0.2,
            "max_tokens": 200,
            "stop": ["```"],
        }
        headers = {"Content-Type": "application/json"}

        try:
            response = requests.post(
                self.chat_url,
                json=payload,
                timeout=self.timeout,
                headers=headers,
            )
        except requests.exceptions.Timeout as e:
            msg = "LLM timeout"
            raise AlertGenerationError(msg) from e
        except requests.RequestException as e:
            msg = "LLM exception"
            raise AlertGenerationError(msg) from e

        if response.status_code != HTTP_OK:
            msg = f"LLM error (HTTP {response.status_code})"
            raise AlertGenerationError(msg)

        try:
            response_data: dict[str, Any] = response.json()
            content = response_data["choices"][0]["message"]["content"].strip()
            message_data = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            msg = "LLM parse error"
            raise AlertGenerationError(msg) from e

        alert_message = (
            message_data.get("alertMessage") if isinstance(message_data, dict) else None
        )
        if not isinstance(alert_message, str) or not alert_message.strip():
            msg = "LLM returned no alert message"
            raise AlertGenerationError(msg)

        logger.info("alert message generated by %s", self.model_name)
        return alert_message.strip()


# 便利関数
def create_llm_service(
    base_url: str | None = None,
    model_name: str | None = None,
) -> LLMService:
    """LLMサービスのファクトリ関数.

    環境変数で設定（必須）:
    - LLM_URL: OpenAI互換APIのベースURL（例: http://127.0.0.1:1234）
    - LLM_MODEL: 使用するモデル名（例: google/gemma-3-4b）
    """
    resolved_base = base_url or os.getenv("LLM_URL")
    resolved_model = model_name or os.getenv("LLM_MODEL")
    if not resolved_base or not resolved_model:
        msg = "LLM_URL and LLM_MODEL must be set (e.g., in .env.local)."
        raise RuntimeError(msg)
    return LLMService(base_url=resolved_base, model_name=resolved_model)
