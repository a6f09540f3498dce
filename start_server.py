#!/usr/bin/env python3
"""Start the dispatch API, honouring the PORT environment variable."""

import logging
import os
import sys

import uvicorn

from crew_dispatch.config import settings


def _port() -> int:
    raw = os.environ.get("PORT", "8000")
    try:
        return int(raw)
    except ValueError:
        logging.warning("Invalid PORT value '%s', using default 8000", raw)
        return 8000


def main() -> int:
    port = _port()
    print(f"Starting {settings.app_name} on port {port}...", file=sys.stderr)
    uvicorn.run(
        "crew_dispatch.main:app",
        host="0.0.0.0",
        port=port,
        proxy_headers=True,
        forwarded_allow_ips="*",
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
