import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configures root logging to stdout, where the hosting platform collects it."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Avoid double logging if uvicorn installs its own handlers
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
