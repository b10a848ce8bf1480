import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging() -> None:
    """Configure the root logger from settings"""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # SQL echo is switched on by DEBUG on the engine itself
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
