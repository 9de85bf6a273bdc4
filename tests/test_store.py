import json

import pytest

from api_eater.errors import InvalidConnection
from api_eater.models import RequestSpec, Script
from api_eater.store import ConnectionStore, EnvFile, ScriptStore, read_json

# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


def test_connection_upsert_normalizes_id(tmp_path):
    store = ConnectionStore(tmp_path / "connections.json")
    conn = store.upsert({"name": "My Shop", "baseUrl": "https://shop.test", "token": "tok"})

    assert conn.id == "MY_SHOP"
    assert conn.name == "My Shop"
    saved = json.loads((tmp_path / "connections.json").read_text())
    assert saved["connections"][0]["baseUrl"] == "https://shop.test"


def test_connection_upsert_updates_in_place_and_prepends_new(tmp_path):
    store = ConnectionStore(tmp_path / "connections.json")
    store.upsert({"id": "alpha", "baseUrl": "https://a.test"})
    store.upsert({"id": "beta", "baseUrl": "https://b.test"})
    store.upsert({"id": "ALPHA", "baseUrl": "https://a2.test"})

    ids = [c.id for c in store.list_connections()]
    assert ids == ["BETA", "ALPHA"]
    assert store.list_connections()[1].base_url == "https://a2.test"


def test_connection_empty_id_rejected(tmp_path):
    store = ConnectionStore(tmp_path / "connections.json")
    with pytest.raises(InvalidConnection, match="Missing id"):
        store.upsert({"name": "!!!"})


def test_connection_delete(tmp_path):
    store = ConnectionStore(tmp_path / "connections.json")
    store.upsert({"id": "alpha"})
    store.upsert({"id": "beta"})
    store.delete("Alpha")
    assert [c.id for c in store.list_connections()] == ["BETA"]


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------


def test_script_upsert_assigns_id_and_timestamps(tmp_path):
    store = ScriptStore(tmp_path / "scripts.json")
    saved = store.upsert(Script(name="list items", request=RequestSpec(path="/items")))

    assert saved.id and len(saved.id) == 8
    assert saved.created_at and saved.updated_at
    raw = store.list_scripts()[0]
    assert raw["request"]["path"] == "/items"
    assert raw["createdAt"] == saved.created_at


def test_script_upsert_keeps_created_at_and_extra_fields(tmp_path):
    store = ScriptStore(tmp_path / "scripts.json")
    first = store.upsert(Script.model_validate({"id": "abc", "name": "v1", "tags": ["x"], "request": {"url": "https://x.test"}}))
    second = store.upsert(Script.model_validate({"id": "abc", "name": "v2", "createdAt": first.created_at, "request": {"url": "https://x.test"}}))

    scripts = store.list_scripts()
    assert len(scripts) == 1
    assert scripts[0]["name"] == "v2"
    assert second.created_at == first.created_at
    assert store.get("abc").name == "v2"
    assert store.get("missing") is None


# ---------------------------------------------------------------------------
# Raw dotenv file
# ---------------------------------------------------------------------------


def test_env_file_write_backs_up_previous(tmp_path):
    env_file = EnvFile(tmp_path / ".env")
    assert env_file.read() == ""
    assert env_file.write("A=1\n") is None

    backup = env_file.write("A=2\n")
    assert backup is not None
    assert backup.read_text() == "A=1\n"
    assert backup.name.startswith(".env.") and backup.name.endswith(".bak")
    assert env_file.read() == "A=2\n"


def test_read_json_fallback_is_a_copy(tmp_path):
    fallback = {"scripts": []}
    data = read_json(tmp_path / "missing.json", fallback)
    data["scripts"].append(1)
    assert fallback == {"scripts": []}
