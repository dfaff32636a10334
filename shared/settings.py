import os
from typing import Optional
from dotenv import load_dotenv
load_dotenv(".venv/.env")

def require_env(var_name: str, default: Optional[str] = None) -> str:
    val = os.getenv(var_name)
    if not val:
        if default is None:
            raise ValueError(f"Missing required environment variable: {var_name}")
        val = default
    return val

def env_int(var_name: str, default: int) -> int:
    raw = require_env(var_name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {var_name} must be an integer, got {raw!r}")

# "firestore" talks to Cloud Firestore, "memory" keeps everything in-process
STORE_BACKEND = require_env("STORE_BACKEND", "firestore").lower()
SECRETS_DIR = require_env("SECRETS_DIR", ".secrets")
DEVICE_STATE_PATH = require_env("DEVICE_STATE_PATH", ".device_state.json")

# Bounded window scanned client-side when the sorted active-conversation query is rejected
RESOLVE_FALLBACK_WINDOW = env_int("RESOLVE_FALLBACK_WINDOW", 10)
FAQ_SEARCH_WINDOW = env_int("FAQ_SEARCH_WINDOW", 5)
