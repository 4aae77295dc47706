import logging
import os

from dotenv import load_dotenv

# Pick up a local .env (API key, database url) before reading settings
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

APP_TITLE = "AutoOMR"

# Gemini API key; GEMINI_API_KEY accepted as an alias
API_KEY = os.environ.get("API_KEY") or os.environ.get("GEMINI_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'omr.db')}")

RESULTS_PER_PAGE = int(os.environ.get("RESULTS_PER_PAGE", "10"))
PASS_MARK = int(os.environ.get("PASS_MARK", "50"))
PIPELINE_ERROR_RATE = float(os.environ.get("PIPELINE_ERROR_RATE", "0.1"))
MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "10"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once for the dashboard, the API and the CLI."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
