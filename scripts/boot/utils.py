"""Shared helpers for the SafeTrail start/stop scripts."""

import logging
import shutil
import subprocess
import time
from pathlib import Path

import requests
from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = REPO_ROOT / "log"
API_PID_FILE = REPO_ROOT / "api_server.pid"
RECEIVER_PID_FILE = REPO_ROOT / "receiver.pid"

API_HOST = "127.0.0.1"
API_PORT = 5577
API_BASE_URL = f"http://{API_HOST}:{API_PORT}"

POLL_INTERVAL_S = 0.5

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("safetrail.scripts")


class LmsNotFoundError(RuntimeError):
    """LM Studio の CLI (lms) が PATH にない."""


def responds(url: str, timeout: float = 2.5) -> bool:
    """URL が 2xx/3xx を返すか."""
    if not url.lower().startswith(("http://", "https://")):
        return False
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException:
        return False
    return resp.ok or resp.is_redirect


def wait_until_up(url: str, timeout: float = 30.0) -> bool:
    """起動直後のサーバーが応答するまで待つ."""
    deadline = time.monotonic() + timeout
    while True:
        if responds(url):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(POLL_INTERVAL_S)


def lms(*args: str, capture: bool = False) -> str:
    """lms サブコマンドを実行し、capture 時は標準出力を返す."""
    exe = shutil.which("lms")
    if exe is None:
        msg = "lms コマンドが見つかりません"
        raise LmsNotFoundError(msg)
    done = subprocess.run(  # noqa: S603
        [exe, *args], capture_output=capture, text=True, check=False
    )
    if done.returncode != 0:
        logger.warning(f"lms {' '.join(args)} が失敗しました (exit {done.returncode})")
    return done.stdout or ""


def write_pid(path: Path, pid: int) -> None:
    path.write_text(str(pid), encoding="ascii")


def read_pid(path: Path) -> int | None:
    """PIDファイルを読む. ないか壊れていれば None."""
    try:
        return int(path.read_text(encoding="ascii").strip())
    except (OSError, ValueError):
        return None


def load_local_env() -> None:
    load_dotenv(dotenv_path=REPO_ROOT / ".env.local", override=True)
