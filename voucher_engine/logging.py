"""
Logging for the voucher service.

Everything goes to stdout in one format. Loggers in use:
- voucher_engine: startup line and one access line per request (request_id, latency)
- voucher_engine.services.ledger: rejections, rollbacks after a lost usage slot, commits
- voucher_engine.services.catalog: catalogue read failures (logger.exception)
"""
import logging
import sys


def setup_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> None:
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
        force=True,
    )
    # Service loggers follow the configured level; uvicorn's access log is replaced by the request middleware line
    logging.getLogger("voucher_engine").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
