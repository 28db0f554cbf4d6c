from __future__ import annotations

import argparse

import uvicorn

from pushworker.apps.api.main import create_app


def main() -> None:
    # Serve the HTTP trigger so an external scheduler can POST /push-worker/run.
    parser = argparse.ArgumentParser(description="Serve the push worker HTTP trigger")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
