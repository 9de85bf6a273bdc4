# config.py
# Environment resolution and filesystem layout.
#
# The resolved environment is rebuilt from its sources on every call so it
# always reflects what is on disk right now. Precedence, lowest to highest:
#
#   process configuration < env.json overrides < connections < .env file
#
# The raw .env file wins over everything so an operator can hand-edit a value
# to override it while debugging.

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from dotenv import dotenv_values

from api_eater.store import normalize_id, read_json

DEFAULT_MODEL = "gpt-5"
DEFAULT_PORT = 4001

PUBLIC_KEYS = frozenset(
    {
        "OPENAI_MODEL",
        "OPENAI_API_KEY",
        "SERPAPI_API_KEY",
        "BING_SEARCH_API_KEY",
        "GOOGLE_API_KEY",
        "GOOGLE_CSE_ID",
        "BRAVE_SEARCH_API_KEY",
    }
)

_SECRET_NAME = re.compile(r"KEY|TOKEN")


def is_base_url_key(key: str) -> bool:
    return key.endswith("_BASE_URL")


def mask(value: Any) -> str:
    """Keep the first and last 3 characters of a secret; hide short ones entirely."""
    if not value:
        return ""
    text = str(value)
    if len(text) <= 6:
        return "****"
    return f"{text[:3]}…{text[-3:]}"


def connection_env(document: Any) -> dict[str, str]:
    """Project the connections document onto ID_BASE_URL / ID_TOKEN / ... keys."""
    out: dict[str, str] = {}
    if not isinstance(document, dict):
        return out
    for raw in document.get("connections") or []:
        if not isinstance(raw, dict):
            continue
        conn_id = normalize_id(raw.get("id") or raw.get("name"))
        if not conn_id:
            continue
        for field_name, suffix in (
            ("baseUrl", "BASE_URL"),
            ("token", "TOKEN"),
            ("openapiUrl", "OPENAPI_URL"),
            ("apiDocUrl", "API_DOC_URL"),
        ):
            if raw.get(field_name):
                out[f"{conn_id}_{suffix}"] = str(raw[field_name])
    return out


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Settings:
    """Where the stores live and how the server binds."""

    home: Path
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        environ = os.environ if environ is None else environ
        return cls(
            home=Path(environ.get("API_EATER_HOME") or Path.cwd()).resolve(),
            host=environ.get("HOST") or "0.0.0.0",
            port=int(environ.get("PORT") or DEFAULT_PORT),
        )

    @property
    def data_dir(self) -> Path:
        return self.home / "data"

    @property
    def env_file(self) -> Path:
        return self.home / ".env"

    @property
    def env_json_file(self) -> Path:
        return self.data_dir / "env.json"

    @property
    def connections_file(self) -> Path:
        return self.data_dir / "connections.json"

    @property
    def scripts_file(self) -> Path:
        return self.data_dir / "scripts.json"


@dataclass(frozen=True)
class EnvSources:
    """The four configuration sources, lowest precedence first."""

    process: Mapping[str, str] = field(default_factory=lambda: os.environ)
    env_json: Path | None = None
    connections: Path | None = None
    dotenv: Path | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, process: Mapping[str, str] | None = None
    ) -> "EnvSources":
        return cls(
            process=os.environ if process is None else process,
            env_json=settings.env_json_file,
            connections=settings.connections_file,
            dotenv=settings.env_file,
        )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ConfigResolver:
    """Merges the configured sources into one flat string environment."""

    def __init__(self, sources: EnvSources) -> None:
        self._sources = sources

    def _process(self) -> dict[str, str]:
        return {str(k): str(v) for k, v in self._sources.process.items() if v is not None}

    def _overrides(self) -> dict[str, str]:
        if self._sources.env_json is None:
            return {}
        data = read_json(self._sources.env_json, {})
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _connections(self) -> dict[str, str]:
        if self._sources.connections is None:
            return {}
        return connection_env(read_json(self._sources.connections, {"connections": []}))

    def _dotenv(self) -> dict[str, str]:
        path = self._sources.dotenv
        if path is None or not path.is_file():
            return {}
        return {k: v for k, v in dotenv_values(path).items() if v is not None}

    def resolve(self) -> dict[str, str]:
        env: dict[str, str] = {}
        env.update(self._process())
        env.update(self._overrides())
        env.update(self._connections())
        env.update(self._dotenv())
        return env

    def public_view(self) -> dict[str, str]:
        """Allow-listed keys only, with secret-looking values masked."""
        env = self.resolve()
        out: dict[str, str] = {}
        for key, value in env.items():
            if not (is_base_url_key(key) or key in PUBLIC_KEYS):
                continue
            out[key] = mask(value) if _SECRET_NAME.search(key) else value
        if not out.get("OPENAI_MODEL"):
            out["OPENAI_MODEL"] = env.get("OPENAI_MODEL") or DEFAULT_MODEL
        return out

    def missing_required(self) -> list[str]:
        env = self.resolve()
        missing: list[str] = []
        if not env.get("OPENAI_API_KEY"):
            missing.append("OPENAI_API_KEY")
        if not any(is_base_url_key(k) for k in env):
            missing.append("*_BASE_URL")
        return missing
