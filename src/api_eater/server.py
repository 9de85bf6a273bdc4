# server.py
# HTTP surface for the agent.
#
# Routes under /api: health, merged environment view, raw .env editing,
# connection and saved-script management, and the chat endpoint that runs the
# orchestration loop.
#
# Domain errors are returned as {"error": {"code", "message"}} envelopes.
# Anything unexpected (for example a store that cannot be written) is logged
# with its traceback and answered with a 500.

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.responses import JSONResponse

from api_eater.config import Settings, mask
from api_eater.errors import ApiEaterError, InvalidConnection, InvalidScript, ScriptNotFound
from api_eater.harness import Orchestrator
from api_eater.llm import ChatModel, OpenAIChatModel
from api_eater.models import ChatRequest, Script
from api_eater.store import ConnectionStore, EnvFile
from api_eater.tools import ToolContext

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    InvalidConnection.code: 400,
    InvalidScript.code: 400,
    ScriptNotFound.code: 404,
}


@dataclass
class Services:
    """Everything a route needs, built once per app."""

    settings: Settings
    context: ToolContext
    connections: ConnectionStore
    env_file: EnvFile
    model: ChatModel


class EnvFilePayload(BaseModel):
    content: str = ""


def get_services(request: Request) -> Services:
    return request.app.state.services


router = APIRouter(prefix="/api")


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/env")
def read_env(services: Services = Depends(get_services)):
    """Allow-listed, masked environment plus the list of missing required keys."""
    resolver = services.context.resolver
    return {"values": resolver.public_view(), "missing": resolver.missing_required()}


@router.get("/env-file")
def read_env_file(services: Services = Depends(get_services)):
    return {"path": str(services.env_file.path), "content": services.env_file.read()}


@router.post("/env-file")
def write_env_file(body: EnvFilePayload, services: Services = Depends(get_services)):
    """Overwrite the raw .env file, backing up the previous version first."""
    services.env_file.write(body.content)
    return {"ok": True}


@router.get("/connections")
def list_connections(services: Services = Depends(get_services)):
    """List connections with their tokens masked."""
    connections = []
    for conn in services.connections.list_connections():
        wire = conn.to_wire()
        wire["token"] = mask(conn.token)
        connections.append(wire)
    return {"connections": connections}


@router.post("/connections")
def save_connection(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)):
    """Create or update a connection by its normalized id."""
    conn = services.connections.upsert(payload)
    return {"ok": True, "id": conn.id}


@router.delete("/connections/{connection_id}")
def delete_connection(connection_id: str, services: Services = Depends(get_services)):
    services.connections.delete(connection_id)
    return {"ok": True}


@router.get("/scripts")
def list_scripts(services: Services = Depends(get_services)):
    return {"scripts": services.context.scripts.list_scripts()}


@router.post("/scripts")
def save_script(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)):
    """Create or update a saved request template. The id is generated when absent."""
    if not payload.get("request"):
        raise InvalidScript("Bad script")
    try:
        script = Script.model_validate(payload)
    except ValueError as exc:
        raise InvalidScript(f"Bad script: {exc}") from exc
    saved = services.context.scripts.upsert(script)
    return {"ok": True, "id": saved.id}


@router.post("/agent/chat")
def chat(body: ChatRequest, services: Services = Depends(get_services)):
    """Run the tool loop for one request; returns the reply and the step log."""
    orchestrator = Orchestrator(model=services.model, context=services.context)
    result = orchestrator.run(body.messages, allow_web=body.allow_web, allow_http=body.allow_http)
    return result.to_wire()


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------


def _domain_error(request: Request, exc: ApiEaterError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(exc.code, 400)
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unexpected error during %s %s: %s: %s",
        request.method, request.url.path, type(exc).__name__, exc,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "INTERNAL_ERROR", "message": str(exc)}},
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    model: ChatModel | None = None,
    context: ToolContext | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Store locations; defaults to Settings.from_env().
        model: Chat model; defaults to OpenAIChatModel over the resolved environment.
        context: Tool collaborators; defaults to ToolContext.from_settings().
        transport: httpx transport for outbound calls when `context` is built here.
    """
    settings = settings or Settings.from_env()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    context = context or ToolContext.from_settings(settings, transport=transport)

    app = FastAPI(title="api-eater")
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.services = Services(
        settings=settings,
        context=context,
        connections=ConnectionStore(settings.connections_file),
        env_file=EnvFile(settings.env_file),
        model=model or OpenAIChatModel(context.resolver),
    )
    app.include_router(router)
    app.add_exception_handler(ApiEaterError, _domain_error)
    app.add_exception_handler(Exception, _internal_error)
    return app
