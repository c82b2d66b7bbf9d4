"""Command-line entry point: load the configuration and serve the gateway."""

from __future__ import annotations

import sys

import uvicorn

from dyndns_gateway.config import ConfigValidationError, load_config, parse_args
from dyndns_gateway.logging_config import build_uvicorn_log_config, setup_logging
from dyndns_gateway.server import set_preloaded_config


def main(argv: list[str] | None = None) -> None:
    """
    Start the DynDNS Gateway server.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. If None, uses sys.argv.
    """
    try:
        config = load_config(parse_args(argv))
    except ConfigValidationError as e:
        # Logging is not configured yet
        sys.exit(str(e))

    setup_logging(config.logging)

    # The app imported by uvicorn reuses this configuration in its lifespan
    set_preloaded_config(config)

    uvicorn.run(
        "dyndns_gateway.server:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
        log_config=build_uvicorn_log_config(config.logging),
    )


if __name__ == "__main__":
    main()
