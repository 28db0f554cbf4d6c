from __future__ import annotations

import argparse
import asyncio
import json
import sys

from pushworker.core.config import get_settings
from pushworker.core.logging import configure_logging
from pushworker.services.push.worker import run_push_delivery_loop, run_push_worker


def main() -> int:
    # Run one batch by default; --loop keeps polling with a cached access token.
    parser = argparse.ArgumentParser(description="Deliver pending push notifications")
    parser.add_argument("--loop", action="store_true", help="poll continuously instead of running one batch")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)
    if args.loop:
        asyncio.run(run_push_delivery_loop(settings))
        return 0
    result = asyncio.run(run_push_worker(settings))
    print(json.dumps(result.as_response(), sort_keys=True))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
