from __future__ import annotations

import argparse
from pathlib import Path

import uvicorn

from lineclaim.config import ServiceConfig
from lineclaim.logging_config import configure_logging
from lineclaim.service import create_app


def build_config(argv: list[str] | None = None) -> ServiceConfig:
    config = ServiceConfig.from_env()
    parser = argparse.ArgumentParser(description="Serve the line claim API.")
    parser.add_argument("--host", default=config.host)
    parser.add_argument("--port", type=int, default=config.port)
    parser.add_argument("--data-dir", type=Path, default=config.data_dir)
    parser.add_argument("--public-dir", type=Path, default=config.public_dir)
    parser.add_argument(
        "--cache",
        action="store_true",
        default=config.cache_granted_set,
        help="Keep the granted set in memory between claim cycles",
    )
    parser.add_argument("--log-level", default=config.log_level)
    args = parser.parse_args(argv)

    config.host = args.host
    config.port = args.port
    config.data_dir = args.data_dir
    config.public_dir = args.public_dir
    config.cache_granted_set = args.cache
    config.log_level = args.log_level.upper()
    return config


def main(argv: list[str] | None = None) -> None:
    config = build_config(argv)
    configure_logging(config.log_level)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
