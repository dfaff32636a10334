# observability/langfuse_client.py
import logging

from dotenv import load_dotenv
from langfuse import get_client

load_dotenv(".venv/.env")

logger = logging.getLogger(__name__)

# one client for the chat service; without LANGFUSE_* keys (or with
# LANGFUSE_TRACING_ENABLED=false) every span is a no-op
langfuse = get_client()


def flush_traces() -> None:
    """Push buffered spans before shutdown. Never raises."""
    try:
        langfuse.flush()
    except Exception:
        logger.warning("[TRACING] langfuse flush failed", exc_info=True)
