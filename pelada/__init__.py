import logging

__version__ = "1.0.0"

# Library default; the manage.py CLI replaces it (force=True) with LOG_LEVEL from settings
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger("pelada")
