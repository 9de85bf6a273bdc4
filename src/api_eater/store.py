# store.py
# File-backed persistence: connections, saved scripts and the raw dotenv file.
#
# Every read goes to disk; every write rewrites the whole file. There is no
# locking, so concurrent writers race and the last write wins.

import copy
import json
import logging
import re
import secrets
import shutil
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from api_eater.errors import InvalidConnection
from api_eater.models import Connection, Script

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_id(raw: Any) -> str:
    """Uppercase and collapse non-alphanumeric runs to '_' ("my api" -> "MY_API")."""
    text = str(raw or "").strip().upper()
    return re.sub(r"[^A-Z0-9]+", "_", text).strip("_")


def read_json(path: Path, fallback: Any) -> Any:
    """Load a JSON document, returning a copy of `fallback` when absent or corrupt."""
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return copy.deepcopy(fallback)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unreadable JSON store %s: %s", path, exc)
        return copy.deepcopy(fallback)


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, ensure_ascii=False)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_script_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


class ConnectionStore:
    """`{connections: [...]}` document keyed by normalized id."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        data = read_json(self.path, {"connections": []})
        if not isinstance(data, dict) or not isinstance(data.get("connections"), list):
            return {"connections": []}
        return data

    def list_connections(self) -> list[Connection]:
        out: list[Connection] = []
        for raw in self._load()["connections"]:
            if not isinstance(raw, dict):
                continue
            conn_id = normalize_id(raw.get("id") or raw.get("name"))
            if not conn_id:
                continue
            out.append(
                Connection(
                    id=conn_id,
                    name=str(raw.get("name") or conn_id),
                    base_url=str(raw.get("baseUrl") or ""),
                    token=str(raw.get("token") or ""),
                    openapi_url=str(raw.get("openapiUrl") or ""),
                    api_doc_url=str(raw.get("apiDocUrl") or ""),
                )
            )
        return out

    def upsert(self, payload: dict[str, Any]) -> Connection:
        """Create or update by normalized id. New connections go first."""
        conn_id = normalize_id(payload.get("id") or payload.get("name"))
        if not conn_id:
            raise InvalidConnection("Missing id")

        entry = Connection(
            id=conn_id,
            name=str(payload.get("name") or conn_id),
            base_url=str(payload.get("baseUrl") or ""),
            token=str(payload.get("token") or ""),
            openapi_url=str(payload.get("openapiUrl") or ""),
            api_doc_url=str(payload.get("apiDocUrl") or ""),
        )
        data = self._load()
        connections = data["connections"]
        for index, existing in enumerate(connections):
            if isinstance(existing, dict) and normalize_id(existing.get("id")) == conn_id:
                connections[index] = {**existing, **entry.to_wire()}
                break
        else:
            connections.insert(0, entry.to_wire())

        write_json(self.path, data)
        logger.info("Saved connection %s", conn_id)
        return entry

    def delete(self, raw_id: str) -> None:
        conn_id = normalize_id(raw_id)
        data = self._load()
        data["connections"] = [
            c for c in data["connections"]
            if not (isinstance(c, dict) and normalize_id(c.get("id")) == conn_id)
        ]
        write_json(self.path, data)
        logger.info("Deleted connection %s", conn_id)


# ---------------------------------------------------------------------------
# Saved scripts
# ---------------------------------------------------------------------------


class ScriptStore:
    """`{scripts: [...]}` document of request templates."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        data = read_json(self.path, {"scripts": []})
        if not isinstance(data, dict) or not isinstance(data.get("scripts"), list):
            return {"scripts": []}
        return data

    def list_scripts(self) -> list[dict[str, Any]]:
        return [s for s in self._load()["scripts"] if isinstance(s, dict)]

    def get(self, script_id: str) -> Script | None:
        for raw in self.list_scripts():
            if raw.get("id") == script_id:
                return Script.model_validate(raw)
        return None

    def upsert(self, script: Script) -> Script:
        """Assign id and timestamps when missing, then save. New scripts go first."""
        now = utc_timestamp()
        saved = script.model_copy(
            update={
                "id": script.id or new_script_id(),
                "created_at": script.created_at or now,
                "updated_at": now,
            }
        )
        record = saved.to_wire()

        data = self._load()
        scripts = data["scripts"]
        for index, existing in enumerate(scripts):
            if isinstance(existing, dict) and existing.get("id") == saved.id:
                scripts[index] = record
                break
        else:
            scripts.insert(0, record)

        write_json(self.path, data)
        logger.info("Saved script %s", saved.id)
        return saved


# ---------------------------------------------------------------------------
# Raw dotenv file
# ---------------------------------------------------------------------------


class EnvFile:
    """Line-oriented KEY=VALUE file edited verbatim by operators."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def write(self, content: str) -> Path | None:
        """Overwrite the file, copying the previous version to a timestamped .bak first."""
        backup: Path | None = None
        if self.path.exists():
            stamp = re.sub(r"[:.]", "-", utc_timestamp())
            backup = self.path.with_name(f"{self.path.name}.{stamp}.bak")
            shutil.copyfile(self.path, backup)
            logger.info("Backed up %s to %s", self.path, backup)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content, encoding="utf-8")
        return backup
