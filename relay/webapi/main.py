"""Uvicorn bootstrap for the relay."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from relay.config import load_relay_config, relay_config_from_env
from relay.errors import ConfigurationError

from . import create_app

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _running_under_systemd() -> bool:
    return any(os.getenv(var) for var in ("INVOCATION_ID", "SYSTEMD_EXEC_PID", "JOURNAL_STREAM"))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Remote storage adapter for KairosDB")
    parser.add_argument("--config", "-c", required=True, help="Path to the relay YAML configuration")
    parser.add_argument("--env-file", default=".env", help="dotenv file with RELAY_* overrides")
    args = parser.parse_args(argv)

    if not _running_under_systemd():
        load_dotenv(args.env_file, override=False)

    try:
        base = load_relay_config(args.config).to_dict()
        config = relay_config_from_env(os.environ, base=base)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Error loading configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.debug)
    logger = logging.getLogger(__name__)
    logger.info(
        "Forwarding to %s (timeout=%.1fs, rules=%d, dryrun=%s)",
        config.kairosdb_url,
        config.timeout_s,
        len(config.relabel_rules),
        config.dryrun,
    )

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
