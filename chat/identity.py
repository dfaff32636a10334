"""Stable per-device participant identifiers for visitors and agents."""

from __future__ import annotations

import logging
import secrets
from enum import Enum
from typing import Dict

from shared.settings import DEVICE_STATE_PATH
from shared.time import now_ms
from store.kv_store import JsonFileKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)

AGENT_NAME_KEY = "supportWidget_agentName"
DEFAULT_AGENT_NAME = "Support Agent"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class ParticipantKind(str, Enum):
    VISITOR = "visitor"
    AGENT = "agent"


_KEYS = {
    ParticipantKind.VISITOR: "supportWidget_userId",
    ParticipantKind.AGENT: "supportWidget_agentId",
}
_PREFIXES = {
    ParticipantKind.VISITOR: "user",
    ParticipantKind.AGENT: "agent",
}


def generate_participant_id(kind: ParticipantKind) -> str:
    """Time-based prefix plus random suffix, e.g. user_1718000000000_k3j9x0a2b."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{_PREFIXES[kind]}_{now_ms()}_{suffix}"


class IdentityResolver:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        # used when the key-value store is unavailable; lives as long as this resolver
        self._ephemeral: Dict[ParticipantKind, str] = {}

    def resolve(self, kind: ParticipantKind) -> str:
        kind = ParticipantKind(kind)
        if kind in self._ephemeral:
            return self._ephemeral[kind]

        key = _KEYS[kind]
        try:
            stored = self.kv.get(key)
        except Exception:
            logger.warning("[IDENTITY] could not read %s, using a process-lifetime id", key, exc_info=True)
            return self._ephemeral.setdefault(kind, generate_participant_id(kind))
        if stored:
            return stored

        new_id = generate_participant_id(kind)
        try:
            self.kv.set(key, new_id)
        except Exception:
            logger.warning("[IDENTITY] could not persist %s, id valid for this process only", key, exc_info=True)
            self._ephemeral[kind] = new_id
        else:
            logger.info("[IDENTITY] new %s id %s", kind.value, new_id)
        return new_id

    def display_name(self) -> str:
        try:
            return self.kv.get(AGENT_NAME_KEY) or DEFAULT_AGENT_NAME
        except Exception:
            logger.warning("[IDENTITY] could not read agent name", exc_info=True)
            return DEFAULT_AGENT_NAME

    def set_display_name(self, name: str) -> None:
        try:
            self.kv.set(AGENT_NAME_KEY, name)
        except Exception:
            logger.warning("[IDENTITY] could not persist agent name", exc_info=True)


def device_identity(path: str = DEVICE_STATE_PATH) -> IdentityResolver:
    """Identity kept in this machine's state file."""
    return IdentityResolver(JsonFileKeyValueStore(path))
