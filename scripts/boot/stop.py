#!/usr/bin/env python3
import argparse
import contextlib
import os
from pathlib import Path

import psutil

from scripts.boot.utils import (
    API_PID_FILE,
    RECEIVER_PID_FILE,
    REPO_ROOT,
    lms,
    load_local_env,
    logger,
    read_pid,
)


def stop_by_pid_file(path: Path) -> None:
    pid = read_pid(path)
    if pid is not None:
        try:
            psutil.Process(pid).terminate()
        except psutil.NoSuchProcess:
            logger.info(f"PID {pid} はすでに停止済みです")
    with contextlib.suppress(OSError):
        path.unlink(missing_ok=True)


def stop_llm_server() -> None:
    load_local_env()
    model = os.environ.get("LLM_MODEL", "")

    if model:
        lms("unload", model)
    lms("server", "stop")
    logger.info("LLM server 停止しました")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Stop the SafeTrail services")
    parser.add_argument("--no-llm", action="store_true", help="leave LM Studio running")
    args = parser.parse_args(argv)

    os.chdir(REPO_ROOT)

    logger.info("============== SafeTrail 停止中 ================")

    # APIと受信ポーラーを停止
    stop_by_pid_file(API_PID_FILE)
    stop_by_pid_file(RECEIVER_PID_FILE)

    if not args.no_llm:
        stop_llm_server()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
