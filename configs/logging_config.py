import logging
import os
from typing import Optional


def configure_logging(level: Optional[str] = None) -> None:
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request line (including URLs) at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
