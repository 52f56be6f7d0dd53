"""Entry point for the send safeguard API server.

When executed with ``python -m sharpsend.app`` (or the ``sharpsend``
console script) this module configures logging, reads the settings from the
environment and serves :mod:`sharpsend.api.server` with uvicorn.  Host,
port and log level come from ``SHARPSEND_HOST``, ``SHARPSEND_PORT`` and
``SHARPSEND_LOG_LEVEL``.
"""

from __future__ import annotations

import logging

import uvicorn

from sharpsend.api.server import create_app
from sharpsend.config import SafeguardSettings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main() -> None:
    settings = SafeguardSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
