"""Run the coordinator: ``python -m pycarlink``.

Configuration comes from ``CARLINK_*`` environment variables (see
:meth:`pycarlink.config.CarLinkConfig.from_env`).  Exits with status 1
when the configuration is unusable; otherwise serves until terminated.
"""

from __future__ import annotations

import logging
import os
import sys

from aiohttp import web

from pycarlink.config import CarLinkConfig
from pycarlink.exceptions import CarLinkConfigError
from pycarlink.server import build_app

_logger = logging.getLogger("pycarlink")


def main() -> int:
    logging.basicConfig(
        level=os.environ.get("CARLINK_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = CarLinkConfig.from_env()
    except CarLinkConfigError as exc:
        _logger.error("Cannot start: %s", exc)
        return 1

    _logger.info("pycarlink listening on %s:%d", config.host, config.port)
    web.run_app(build_app(config), host=config.host, port=config.port, print=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
