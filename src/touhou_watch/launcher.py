from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

import uvicorn

from .config import CONFIG_ENV_VAR, LOG_LEVELS, ConfigError, WatcherConfig, load_config


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="touhou-watch-server",
        description="Run the touhou-watch session tracking API.",
    )
    parser.add_argument("--config", default=os.environ.get(CONFIG_ENV_VAR, ""), help="Path to JSON/YAML config.")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None)
    args = parser.parse_args(argv)

    config = WatcherConfig()
    if args.config:
        config_path = Path(args.config).expanduser().resolve()
        try:
            config = load_config(config_path)
        except ConfigError as exc:
            parser.error(str(exc))
        # Exported before api import so the app picks up the same file.
        os.environ[CONFIG_ENV_VAR] = str(config_path)

    host = args.host or config.host
    port = args.port or config.port
    log_level = args.log_level or config.log_level
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from touhou_watch.api import app as api_app

    print(f"touhou-watch API on http://{host}:{port}")
    uvicorn.run(api_app, host=host, port=port, log_level=log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
