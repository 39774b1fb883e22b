"""
Process entrypoint: `python -m app` or the `cadastro-api` console script.

Runs uvicorn on settings.host:settings.port. If the listener cannot bind
(port in use, permission denied) the error is logged and the process exits
with status 1.
"""

import logging
import sys

import uvicorn

from app.config import settings
from app.main import app, setup_logging

logger = logging.getLogger("app")


def main() -> None:
    setup_logging(settings.log_level)
    try:
        # log_config=None keeps the logging setup above instead of uvicorn's
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    except OSError as e:
        logger.error("Could not listen on %s:%d: %s", settings.host, settings.port, e)
        sys.exit(1)
    except SystemExit as e:
        # uvicorn exits with code 1 itself when startup (including bind) fails
        if e.code:
            logger.error("Server exited during startup (code %s)", e.code)
        raise


if __name__ == "__main__":
    main()
