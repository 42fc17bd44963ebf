"""Module entrypoint for running the invoice API server."""

from __future__ import annotations

import logging
import sys

from .config import HOST, LOG_LEVEL, PORT
from .server import DependencyError, run


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, str(LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        run(HOST, PORT)
    except DependencyError as exc:
        logging.getLogger(__name__).error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
