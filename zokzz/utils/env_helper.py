import os
from dotenv import load_dotenv

load_dotenv()

TRUTHY = {"true", "1", "yes", "on"}
UNSET = {"", "none", "null"}


def env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUTHY


def env_none_or_str(name: str, default=None):
    value = os.getenv(name)
    if value is None or value.strip().lower() in UNSET:
        return default
    return value.strip()


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def env_list(name: str, default=None) -> list:
    """Comma separated values; an unset variable yields ``default``."""
    value = os.getenv(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]
