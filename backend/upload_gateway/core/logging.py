import logging

from upload_gateway.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(settings: Settings) -> None:
    """Configure root logging once; later calls keep the existing handlers."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("upload_gateway").setLevel(level)
    # botocore logs every request at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))
