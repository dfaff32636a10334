import re

import pytest

from chat.identity import (
    AGENT_NAME_KEY,
    DEFAULT_AGENT_NAME,
    IdentityResolver,
    ParticipantKind,
    device_identity,
    generate_participant_id,
)
from store.kv_store import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore


class BrokenKeyValueStore(KeyValueStore):
    def __init__(self, fail_get=True, fail_set=True):
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.data = {}

    def get(self, key):
        if self.fail_get:
            raise OSError("storage disabled")
        return self.data.get(key)

    def set(self, key, value):
        if self.fail_set:
            raise OSError("quota exceeded")
        self.data[key] = value


def test_generated_ids_have_prefix_time_and_suffix():
    assert re.fullmatch(r"user_\d+_[0-9a-z]{9}", generate_participant_id(ParticipantKind.VISITOR))
    assert re.fullmatch(r"agent_\d+_[0-9a-z]{9}", generate_participant_id(ParticipantKind.AGENT))


def test_resolve_is_stable_and_persisted():
    kv = MemoryKeyValueStore()
    resolver = IdentityResolver(kv)

    first = resolver.resolve(ParticipantKind.VISITOR)
    assert resolver.resolve(ParticipantKind.VISITOR) == first
    assert kv.get("supportWidget_userId") == first

    # a new resolver on the same device sees the same id
    assert IdentityResolver(kv).resolve("visitor") == first


def test_visitor_and_agent_ids_are_separate():
    resolver = IdentityResolver(MemoryKeyValueStore())
    assert resolver.resolve(ParticipantKind.VISITOR) != resolver.resolve(ParticipantKind.AGENT)


def test_existing_id_is_reused():
    kv = MemoryKeyValueStore({"supportWidget_agentId": "agent_1_abc"})
    assert IdentityResolver(kv).resolve(ParticipantKind.AGENT) == "agent_1_abc"


@pytest.mark.parametrize("fail_get,fail_set", [(True, True), (False, True)])
def test_unavailable_storage_falls_back_to_one_id_per_process(fail_get, fail_set):
    resolver = IdentityResolver(BrokenKeyValueStore(fail_get=fail_get, fail_set=fail_set))

    first = resolver.resolve(ParticipantKind.VISITOR)
    assert first.startswith("user_")
    assert resolver.resolve(ParticipantKind.VISITOR) == first


def test_agent_display_name():
    kv = MemoryKeyValueStore()
    resolver = IdentityResolver(kv)
    assert resolver.display_name() == DEFAULT_AGENT_NAME

    resolver.set_display_name("Dana")
    assert resolver.display_name() == "Dana"
    assert kv.get(AGENT_NAME_KEY) == "Dana"

    assert IdentityResolver(BrokenKeyValueStore()).display_name() == DEFAULT_AGENT_NAME


def test_json_file_store_survives_restart(tmp_path):
    path = tmp_path / "state" / "device.json"
    first = IdentityResolver(JsonFileKeyValueStore(path)).resolve(ParticipantKind.VISITOR)

    assert path.exists()
    assert IdentityResolver(JsonFileKeyValueStore(path)).resolve(ParticipantKind.VISITOR) == first
    assert JsonFileKeyValueStore(path).get("missing") is None


def test_device_identity_uses_the_state_file(tmp_path):
    path = tmp_path / "device.json"
    agent_id = device_identity(str(path)).resolve(ParticipantKind.AGENT)

    assert agent_id.startswith("agent_")
    assert JsonFileKeyValueStore(path).get("supportWidget_agentId") == agent_id
    assert device_identity(str(path)).display_name() == DEFAULT_AGENT_NAME
