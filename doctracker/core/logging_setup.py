import logging
import sys
from pathlib import Path

from doctracker.core.config import settings

_handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

try:
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    _handlers.append(logging.FileHandler(log_dir / "server.log", encoding="utf-8"))
except OSError:
    # read-only deployments log to stdout only
    pass

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    handlers=_handlers,
)

logger = logging.getLogger("doctracker")
