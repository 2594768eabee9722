import logging
from typing import Optional

from dnsaudit.core.config import Settings, get_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    # httpx logs every probe request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
