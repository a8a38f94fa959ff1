#!/usr/bin/env python3
"""
Serve the Last Man Standing API with uvicorn.

Usage:
    python3 scripts/run_api.py
    python3 scripts/run_api.py --port 8080 --no-reload
"""
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

backend = Path(__file__).resolve().parent.parent
load_dotenv(backend / ".env")
sys.path.insert(0, str(backend / "src"))
os.chdir(backend)

import uvicorn

from config import Config
from utils.logger import setup_logging


def run_api(port: int, reload: bool):
    config = Config()
    setup_logging(config)
    print(f"🚀 Starting API on port {port} ({config.environment})")
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Run the backend API server.")
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload in development")
    args = parser.parse_args()
    reload = os.getenv("ENVIRONMENT", "development") == "development" and not args.no_reload
    run_api(args.port, reload)
