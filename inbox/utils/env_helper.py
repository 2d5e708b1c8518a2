import os
from dotenv import load_dotenv

load_dotenv()


def env_none_or_str(name: str, default=None):
    value = os.getenv(name)
    if value is None or value.lower() == "none":
        return default
    return value


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    """Read a comma separated variable, e.g. CORS_ORIGINS=a.com,b.com"""
    value = env_none_or_str(name, None)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]
