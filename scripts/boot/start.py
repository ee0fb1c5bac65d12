#!/usr/bin/env python3
import argparse
import os
import subprocess
import sys
from pathlib import Path

from scripts.boot.utils import (
    API_BASE_URL,
    API_HOST,
    API_PID_FILE,
    API_PORT,
    LOG_DIR,
    RECEIVER_PID_FILE,
    REPO_ROOT,
    lms,
    load_local_env,
    logger,
    responds,
    wait_until_up,
    write_pid,
)


def background_popen(
    cmd: list[str], stdout_path: Path, stderr_path: Path, env: dict[str, str]
) -> subprocess.Popen[bytes]:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    with (
        stdout_path.open("ab", buffering=0) as stdout_f,
        stderr_path.open("ab", buffering=0) as stderr_f,
    ):
        return subprocess.Popen(  # noqa: S603
            cmd,
            cwd=str(REPO_ROOT),
            stdout=stdout_f,
            stderr=stderr_f,
            env=env,
        )


def start_api(env: dict[str, str]) -> None:
    proc = background_popen(
        [
            sys.executable,
            "-m",
            "uvicorn",
            "safetrail.api.main:app",
            "--port",
            str(API_PORT),
            "--host",
            API_HOST,
        ],
        stdout_path=LOG_DIR / "api.log",
        stderr_path=LOG_DIR / "api.err.log",
        env=env,
    )
    write_pid(API_PID_FILE, proc.pid)
    if wait_until_up(f"{API_BASE_URL}/status"):
        logger.info(f"API Server: {API_BASE_URL} が起動 (PID {proc.pid})")
    else:
        logger.warning("FastAPI が応答しません ./log/ 以下を見て")


def start_receiver(env: dict[str, str], code: str) -> None:
    proc = background_popen(
        [sys.executable, "-m", "safetrail.watchers.receiver", code],
        stdout_path=LOG_DIR / "receiver.out.log",
        stderr_path=LOG_DIR / "receiver.err.log",
        env=env,
    )
    write_pid(RECEIVER_PID_FILE, proc.pid)
    logger.info(f"Receiver: {code} を監視中 (PID {proc.pid})")


def ensure_lm_studio(llm_url: str, model: str) -> None:
    """モデルをロードし、LM Studio サーバーが応答するまで待つ."""
    if model not in lms("ps", capture=True):
        lms("load", model)

    models_url = f"{llm_url}/v1/models"
    if not responds(models_url):
        lms("server", "start")
        if not wait_until_up(models_url):
            logger.warning(f"LLM server: {llm_url} が応答しません")
            return
    logger.info(f"LLM server: {llm_url} が起動しました")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Start the SafeTrail services")
    parser.add_argument("--watch", metavar="CODE", help="also start a receiver poller")
    parser.add_argument(
        "--no-llm", action="store_true", help="skip LM Studio (templated alerts only)"
    )
    args = parser.parse_args(argv)

    os.chdir(REPO_ROOT)

    logger.info("================ SafeTrail Starting up... ===============")

    load_local_env()
    child_env = os.environ.copy()

    if not args.no_llm:
        llm_url = os.environ["LLM_URL"].rstrip("/")
        llm_model = os.environ["LLM_MODEL"]
        ensure_lm_studio(llm_url, llm_model)

    start_api(child_env)
    if args.watch:
        start_receiver(child_env, args.watch)

    logger.info("\n============== SafeTrail is now running! =================\n")
    logger.info("\nLogs: ./log/api.log, ./log/safetrail.log")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
