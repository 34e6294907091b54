"""Run the API locally: ``python -m tact_api`` (HOST/PORT from the environment)."""

import logging
import os

import uvicorn

log = logging.getLogger(__name__)

DEFAULT_PORT = 3001


def _port() -> int:
    raw = os.getenv("PORT", "").strip()
    try:
        return int(raw) if raw else DEFAULT_PORT
    except ValueError:
        log.warning("PORT=%r is not an integer; using %d", raw, DEFAULT_PORT)
        return DEFAULT_PORT


def main() -> None:
    uvicorn.run(
        "tact_api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=_port(),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
