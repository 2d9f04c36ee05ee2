"""
Process entrypoint: ``python -m presskit.server``.

Exits 1 when the database cannot be reached after the startup retries and
0 on a graceful interrupt.
"""
import logging
import os
import sys

from dotenv import load_dotenv

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

import uvicorn  # noqa: E402

from presskit.core.config import settings, validate_config  # noqa: E402
from presskit.core.database import DatabaseConnectionError, connect_with_retry  # noqa: E402
from presskit.core.logging import configure_logging  # noqa: E402

logger = logging.getLogger("presskit")


def main() -> int:
    configure_logging(settings.ENV, settings.LOG_LEVEL)
    validate_config(strict=settings.CONFIG_STRICT)

    try:
        engine = connect_with_retry(settings.DATABASE_URL, retries=settings.DB_CONNECT_RETRIES)
    except DatabaseConnectionError as exc:
        logger.error("server.database_unavailable", extra={"error_message": str(exc)})
        return 1

    from presskit.main import create_app

    app = create_app(settings, engine=engine)
    logger.info("server.starting", extra={"port": settings.PORT, "env": settings.ENV})
    try:
        uvicorn.run(app, host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
    except KeyboardInterrupt:
        logger.info("server.interrupted")
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
