import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ["true", "1", "yes"]


def env_none_or_str(name: str, default=None):
    value = os.getenv(name)
    if value is None or value.lower() == "none":
        return default
    return value


def env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = env_none_or_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {value!r}).")


def env_list(name: str, default: Optional[List[str]] = None) -> List[str]:
    """Comma separated values, blanks dropped."""
    value = env_none_or_str(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]
