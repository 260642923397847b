from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from business_directory.config import configure_logging, load_config


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the business directory HTTP API")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address; loopback clients skip the mutation key")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on source changes (development)")
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    args = parser.parse_args()

    config = load_config()
    log_level = (args.log_level or config.log_level).upper()
    configure_logging(log_level)
    if not config.admin_api_key and args.host not in ("127.0.0.1", "localhost", "::1"):
        print("warning: ADMIN_API_KEY is unset; mutating routes will reject remote clients", file=sys.stderr)

    uvicorn.run(
        "business_directory.api:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=None if args.reload else args.workers,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
