import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s [%(process)d] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the API process and scripts."""
    logging.basicConfig(
        format=LOG_FORMAT,
        level=(level or settings.LOG_LEVEL).upper(),
    )
    # requests/urllib3 are chatty at INFO on every provider call
    logging.getLogger("urllib3").setLevel(logging.WARNING)
