"""restserver CLI - serve a storage directory as a restic REST backend.

Usage:
    python -m restserver [--listen ADDR] [--path DIR] [--log FILE]
                         [--tls [--tls-cert FILE] [--tls-key FILE]]
                         [--append-only] [--prometheus] [--debug]
                         [--idle-timeout SECONDS]

Authentication is enabled when DIR/.htpasswd exists.

Exit codes:
    0: Server stopped normally
    1: Invalid configuration / startup failure
"""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError

from restserver import __version__
from restserver.config import (
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_LISTEN,
    DEFAULT_PATH,
    ConfigError,
    ServerConfig,
)

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="restserver",
        description="Serve a storage directory with a REST server for use with restic",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--listen", default=DEFAULT_LISTEN, help="listen address")
    parser.add_argument(
        "--log",
        default=None,
        metavar="FILE",
        help="log HTTP requests in the combined log format",
    )
    parser.add_argument("--path", default=DEFAULT_PATH, metavar="DIR", help="data directory")
    parser.add_argument("--tls", action="store_true", default=False, help="turn on TLS support")
    parser.add_argument("--tls-cert", default=None, metavar="FILE", help="TLS certificate path")
    parser.add_argument("--tls-key", default=None, metavar="FILE", help="TLS key path")
    parser.add_argument(
        "--append-only",
        action="store_true",
        default=False,
        help="enable append only mode",
    )
    parser.add_argument(
        "--prometheus",
        action="store_true",
        default=False,
        help="enable blob traffic metrics",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="log handler operations and error causes",
    )
    parser.add_argument(
        "--idle-timeout",
        type=int,
        default=DEFAULT_IDLE_TIMEOUT,
        metavar="SECONDS",
        help="close idle keep-alive connections after this many seconds",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Build the immutable server configuration from parsed arguments.

    Raises:
        ConfigError: If the flags are inconsistent.
    """
    try:
        config = ServerConfig(
            listen=args.listen,
            log=args.log,
            path=args.path,
            tls=args.tls,
            tls_cert=args.tls_cert,
            tls_key=args.tls_key,
            append_only=args.append_only,
            metrics_enabled=args.prometheus,
            debug=args.debug,
            idle_timeout=args.idle_timeout,
        )
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

    # Surface TLS and listen errors before anything starts.
    config.tls_settings()
    config.listen_host_port()
    return config


def configure_logging(debug: bool) -> None:
    """Configure the application log on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def serve(config: ServerConfig) -> None:
    """Build the application and run it until interrupted."""
    import uvicorn

    from restserver.api.main import create_app
    from restserver.observability.metrics import configure_metrics

    if config.metrics_enabled and not configure_metrics():
        raise ConfigError(
            "metrics exporter unavailable: install restserver[otel] "
            "or set RESTSERVER_OTEL_EXPORTER=console"
        )

    app = create_app(config)

    tls = config.tls_settings()
    host, port = config.listen_host_port()

    if tls.enabled:
        logger.info("TLS enabled")
        logger.info("Private key: %s", tls.key)
        logger.info("Public key(certificate): %s", tls.cert)
    logger.info("Starting server on %s", config.listen)

    uvicorn.run(
        app,
        host=host,
        port=port,
        ssl_keyfile=tls.key,
        ssl_certfile=tls.cert,
        timeout_keep_alive=config.idle_timeout,
        log_level="debug" if config.debug else "info",
        access_log=False,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Server stopped normally
        1: Invalid configuration / startup failure
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.debug)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"restserver: {e}", file=sys.stderr)
        return 1

    try:
        serve(config)
    except Exception as e:
        logger.error("Server failed: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
