#!/usr/bin/env python3
"""
Start the claims desk API.

Usage:
    python run_server.py                 # host/port from settings (.env)
    python run_server.py --port 8080
    python run_server.py --reload        # auto-reload while developing

Settings come from the environment and .env (see .env.example):
LLM_PROVIDER selects openai, claude or mock; CLAIMS_STORAGE_BACKEND selects
file (default) or redis.
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Quiet the HTTP client libraries before the app imports them
for noisy in ("openai", "anthropic", "httpcore", "httpx"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

load_dotenv()

console = Console()


def print_banner(host: str, port: int, settings) -> None:
    base = f"http://{host}:{port}"
    table = Table(title="Claims Desk", show_header=False, box=None)
    table.add_row("Server", base)
    table.add_row("Storage", settings.claims_storage_backend)
    table.add_row("LLM provider", settings.llm_provider)
    table.add_row("Health", f"{base}/health")
    table.add_row("Intake", f"POST {base}/api/extract-claim")
    table.add_row("Claims", f"{base}/api/claims")
    table.add_row("Reminders", f"{base}/api/reminders/pending")
    table.add_row("Finance", f"{base}/api/finance/summary")
    console.print(table)


def main():
    import uvicorn
    from src.utils.config import settings

    parser = argparse.ArgumentParser(description="Run the claims desk API")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--reload", action="store_true", default=settings.debug)
    args = parser.parse_args()

    print_banner(args.host, args.port, settings)
    uvicorn.run(
        "src.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
