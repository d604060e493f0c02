import logging
import os
import secrets
import sys
from pathlib import Path

from dotenv import dotenv_values, find_dotenv

ROOT = Path(__file__).resolve().parent
ENV_PATH = find_dotenv(usecwd=True) or str(ROOT / "env" / ".env")


def default_storage_folder() -> str:
    # Windows installs keep their data next to the app
    if sys.platform.startswith('win'):
        return str(ROOT / 'data') + os.sep
    return '/usr/data/'


def get_settings():
    """Defaults, overridden by the OS environment, overridden by .env."""
    defaults = {
        'GAPS_STORAGE_FOLDER': default_storage_folder(),
        'PLEX_TIMEOUT': '10',
        'FUZZY_THRESHOLD': '90',
        'SECRET_KEY': '',
        'LOG_LEVEL': 'INFO',
        'HOST': '0.0.0.0',
        'PORT': '8484',
    }
    try:
        vals = dotenv_values(ENV_PATH) if os.path.exists(ENV_PATH) else {}
    except OSError:
        vals = {}
    result = {}
    for k in defaults.keys():
        result[k] = vals.get(k) or os.environ.get(k) or defaults[k]

    # Numeric fields fall back to their defaults when unparsable
    for k in ('PLEX_TIMEOUT', 'FUZZY_THRESHOLD', 'PORT'):
        try:
            result[k] = int(result[k])
        except (TypeError, ValueError):
            result[k] = int(defaults[k])
    if not result['SECRET_KEY']:
        result['SECRET_KEY'] = secrets.token_hex(32)
    return result


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
