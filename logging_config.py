import logging

from config import settings


def setup_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # httpx logs every outbound request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
