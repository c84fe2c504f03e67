import os
import re
from typing import Optional
from dotenv import load_dotenv

_TRUTHY = ("1", "true", "yes", "on")


def ensure_env_loaded(env_path: str = None):
    path = env_path or os.path.join(os.getcwd(), ".env")
    load_dotenv(path)

    # python-dotenv skips lines like 'KEY: "value"'; pick those up without overriding the environment
    if not os.path.exists(path):
        return
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            m = re.match(r"^([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(?:\"([^\"]*)\"|'([^']*)'|([^#]*))", line)
            if not m:
                continue
            key = m.group(1)
            val = (m.group(2) or m.group(3) or m.group(4) or "").strip()
            if key not in os.environ:
                os.environ[key] = val


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
