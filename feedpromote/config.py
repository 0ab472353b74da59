import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Config directory: respects XDG_CONFIG_HOME, overridable with FEEDPROMOTE_CONFIG_DIR
CONFIG_DIR = Path(
    os.environ.get("FEEDPROMOTE_CONFIG_DIR", "")
    or (
        Path(os.environ.get("XDG_CONFIG_HOME", "") or Path.home() / ".config")
        / "feedpromote"
    )
)
CONFIG_DIR.mkdir(parents=True, exist_ok=True)

# .env file: prefer CWD (for dev installs), then config dir
ENV_PATH = CONFIG_DIR / ".env"
if not ENV_PATH.exists() and (Path.cwd() / ".env").exists():
    ENV_PATH = Path.cwd() / ".env"

load_dotenv(ENV_PATH)

TOKEN_URL = "https://readwise.io/access_token"


def _require(var: str) -> str:
    value = os.environ.get(var, "").strip()
    if not value or value.startswith("your_"):
        print(f"Error: {var} environment variable is required")
        print(f"Get your token from: {TOKEN_URL}")
        sys.exit(1)
    return value


# Required: loaded lazily via ensure_loaded(), called at start of main()
READWISE_TOKEN: str = ""

API_BASE: str = os.environ.get("READWISE_API_BASE", "https://readwise.io/api/v3").strip().rstrip("/")

# 20 req/min = 1 per 3 seconds
REQUEST_DELAY: float = float(os.environ.get("REQUEST_DELAY", "3"))
RETRY_AFTER_DEFAULT: int = int(os.environ.get("RETRY_AFTER_DEFAULT", "60"))

READ_MARKER: str = os.environ.get("READ_MARKER", "📖 READ")

FEED_LOCATION: str = os.environ.get("FEED_LOCATION", "feed").strip()
PROMOTE_LOCATION: str = os.environ.get("PROMOTE_LOCATION", "later").strip()
LATER_LOCATION: str = os.environ.get("LATER_LOCATION", "later").strip()
ARCHIVE_LOCATION: str = os.environ.get("ARCHIVE_LOCATION", "archive").strip()

STATE_PATH: Path = Path(
    os.environ.get("STATE_PATH", "").strip() or CONFIG_DIR / "processed.json"
)

HTTP_TIMEOUT: int = int(os.environ.get("HTTP_TIMEOUT", "30"))
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").strip().upper()


_loaded = False


def ensure_loaded() -> None:
    """Validate required config vars. Call at the start of main()."""
    global _loaded, READWISE_TOKEN
    if _loaded:
        return
    READWISE_TOKEN = _require("READWISE_TOKEN")
    _loaded = True


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the run. Call once at each entry point."""
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Keep urllib3 connection chatter out of --verbose traces
    logging.getLogger("urllib3").setLevel(logging.WARNING)
