# tools.py
# Tool registry: the closed set of actions the orchestration loop may invoke.
# The harness dispatches through TOOLS and never calls these handlers directly.
#
# Each tool has a pydantic argument model validated on entry, a handler, and
# optionally a capability flag (allow_web / allow_http) that the request must
# have switched on. Handlers return ToolOutcomes: one Step for the log plus
# the payload the model gets to see.

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from api_eater.config import ConfigResolver, EnvSources, Settings, is_base_url_key
from api_eater.discovery import collect_spec_hints, load_openapi, probe_openapi
from api_eater.errors import (
    AmbiguousBase,
    ApiEaterError,
    CapabilityDisabled,
    InvalidArguments,
    MissingBase,
    ScriptNotFound,
    UnknownTool,
)
from api_eater.gateway import Gateway, inject_credentials
from api_eater.models import HttpResult, RequestSpec, Script, Step, ToolDirective
from api_eater.search import WebSearch
from api_eater.store import ScriptStore

BODY_SAMPLE_LIMIT = 1200
AUTO_RUN = "script.run(auto)"


# ---------------------------------------------------------------------------
# Context and outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolContext:
    """Collaborators and per-request capability flags handed to every handler."""

    resolver: ConfigResolver
    gateway: Gateway
    scripts: ScriptStore
    search: WebSearch
    allow_web: bool = True
    allow_http: bool = True

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
        process: Mapping[str, str] | None = None,
    ) -> "ToolContext":
        return cls(
            resolver=ConfigResolver(EnvSources.from_settings(settings, process)),
            gateway=Gateway(transport=transport),
            scripts=ScriptStore(settings.scripts_file),
            search=WebSearch(transport=transport),
        )

    def with_capabilities(self, allow_web: bool, allow_http: bool) -> "ToolContext":
        return dataclasses.replace(self, allow_web=allow_web, allow_http=allow_http)


@dataclass(frozen=True)
class ToolOutcome:
    step: Step
    feedback: Any = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------


class NoArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SearchArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    q: str = Field(..., min_length=1, description="Search query.")

    @field_validator("q", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class ProbeArgs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    base_url: str | None = None
    base_var: str | None = None


class LoadArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1)


class RunArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    request: RequestSpec | None = None


# ---------------------------------------------------------------------------
# URL resolution and request execution
# ---------------------------------------------------------------------------


def pick_base(env: Mapping[str, str], base_var: str | None = None) -> str:
    """The base URL named by `base_var`, else the only *_BASE_URL in `env`."""
    if base_var and env.get(base_var):
        return env[base_var]
    candidates = [k for k in env if is_base_url_key(k)]
    if len(candidates) == 1:
        return env[candidates[0]]
    if not candidates:
        raise MissingBase("No *_BASE_URL found; provide args.url or set a BASE_URL")
    raise AmbiguousBase(f"Multiple *_BASE_URL found ({', '.join(sorted(candidates))}); specify args.baseVar")


def resolve_url(env: Mapping[str, str], spec: RequestSpec, label: str) -> str:
    if spec.url:
        return spec.url
    if spec.path:
        base = pick_base(env, spec.base_var)
        return base.rstrip("/") + "/" + spec.path.lstrip("/")
    raise InvalidArguments(f"No url for {label}")


def _send(ctx: ToolContext, env: Mapping[str, str], url: str, spec: RequestSpec) -> HttpResult:
    headers = inject_credentials(env, url, spec.headers)
    return ctx.gateway.call(spec.method, url, headers, spec.body)


def _request_outcome(label: str, spec: RequestSpec, url: str, result: HttpResult) -> ToolOutcome:
    step = Step(
        tool=label,
        ok=True,
        args={"method": spec.method, "url": url},
        result={
            "status": result.status,
            "ok": result.ok,
            "contentType": result.content_type,
            "sample": result.body_text[:BODY_SAMPLE_LIMIT],
        },
    )
    return ToolOutcome(step=step, feedback=result.to_wire())


def execute_request(ctx: ToolContext, spec: RequestSpec, label: str) -> ToolOutcome:
    """Resolve the URL, inject credentials and call through the gateway."""
    env = ctx.resolver.resolve()
    url = resolve_url(env, spec, label)
    return _request_outcome(label, spec, url, _send(ctx, env, url, spec))


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _tool_env_list(args: NoArgs, ctx: ToolContext) -> list[ToolOutcome]:
    present = {k: bool(v) for k, v in ctx.resolver.resolve().items()}
    return [ToolOutcome(step=Step(tool="env.list", ok=True, result=present), feedback=present)]


def _tool_spec_hints(args: NoArgs, ctx: ToolContext) -> list[ToolOutcome]:
    hints = [h.to_wire() for h in collect_spec_hints(ctx.resolver.resolve())]
    return [ToolOutcome(step=Step(tool="spec.hints", ok=True, result=hints), feedback=hints)]


def _tool_web_search(args: SearchArgs, ctx: ToolContext) -> list[ToolOutcome]:
    results = [r.to_wire() for r in ctx.search.search(args.q, ctx.resolver.resolve())]
    step = Step(tool="web.search", ok=True, args={"q": args.q}, result=results)
    return [ToolOutcome(step=step, feedback=results)]


def _tool_openapi_probe(args: ProbeArgs, ctx: ToolContext) -> list[ToolOutcome]:
    env = ctx.resolver.resolve()
    base_var = args.base_var
    base_url = args.base_url or (env.get(base_var) if base_var else None)
    if not base_url:
        candidates = [k for k in env if is_base_url_key(k)]
        if len(candidates) != 1:
            hint = "Specify baseVar or baseUrl for openapi.probe"
            if candidates:
                raise AmbiguousBase(f"{hint} (candidates: {', '.join(sorted(candidates))})")
            raise MissingBase(hint)
        base_var = candidates[0]
        base_url = env[base_var]

    document = probe_openapi(ctx.gateway, base_url).to_wire()
    step_args = {"baseUrl": base_url}
    if base_var:
        step_args["baseVar"] = base_var
    step = Step(tool="openapi.probe", ok=document["ok"], args=step_args, result=document)
    return [ToolOutcome(step=step, feedback=document)]


def _tool_openapi_load(args: LoadArgs, ctx: ToolContext) -> list[ToolOutcome]:
    document = load_openapi(ctx.gateway, args.url).to_wire()
    step = Step(tool="openapi.load", ok=True, args={"url": args.url}, result=document)
    return [ToolOutcome(step=step, feedback=document)]


def _tool_http(args: RequestSpec, ctx: ToolContext) -> list[ToolOutcome]:
    return [execute_request(ctx, args, "http")]


def _auto_run(ctx: ToolContext, spec: RequestSpec) -> ToolOutcome:
    """Execute a just-saved template. Failures become a failed step, never an exception."""
    try:
        return execute_request(ctx, spec, AUTO_RUN)
    except ApiEaterError as exc:
        error = f"{exc.code}: {exc}"
        return ToolOutcome(step=Step(tool=AUTO_RUN, ok=False, error=error), error=error)


def _tool_script_save(args: Script, ctx: ToolContext) -> list[ToolOutcome]:
    saved = ctx.scripts.upsert(args)
    summary = {"id": saved.id, "name": saved.name}
    outcomes = [ToolOutcome(step=Step(tool="script.save", ok=True, result=summary), feedback=summary)]
    if saved.request is not None:
        outcomes.append(_auto_run(ctx, saved.request))
    return outcomes


def _tool_script_run(args: RunArgs, ctx: ToolContext) -> list[ToolOutcome]:
    spec = args.request
    if spec is None and args.id:
        script = ctx.scripts.get(args.id)
        if script is None:
            raise ScriptNotFound(args.id)
        spec = script.request
    if spec is None:
        raise InvalidArguments("No request provided")
    return [execute_request(ctx, spec, "script.run")]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Tool:
    name: str
    args_model: type[BaseModel]
    handler: Callable[[Any, ToolContext], list[ToolOutcome]]
    capability: str | None = None
    usage: str = ""


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err["loc"]) or "args"
        parts.append(f"{where}: {err['msg']}")
    return "; ".join(parts)


class ToolRegistry:
    """Name -> Tool lookup with capability checks and argument validation."""

    def __init__(self, tools: Iterable[Tool]) -> None:
        self._tools = {t.name: t for t in tools}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def usage(self) -> str:
        return "\n".join(f"- {t.name}: {t.usage}" for t in self._tools.values())

    def dispatch(self, directive: ToolDirective, ctx: ToolContext) -> list[ToolOutcome]:
        tool = self._tools.get(directive.tool)
        if tool is None:
            raise UnknownTool(directive.tool)
        if tool.capability and not getattr(ctx, tool.capability):
            raise CapabilityDisabled(f"{tool.name} is disabled for this request")
        try:
            args = tool.args_model.model_validate(directive.args)
        except ValidationError as exc:
            raise InvalidArguments(f"{tool.name}: {_describe(exc)}") from exc
        return tool.handler(args, ctx)


TOOLS = ToolRegistry(
    [
        Tool("env.list", NoArgs, _tool_env_list,
             usage="{} -> which configuration keys are set (no values)"),
        Tool("spec.hints", NoArgs, _tool_spec_hints,
             usage="{} -> candidate spec/doc URLs per service from *_OPENAPI_URL, *_API_DOC_URL"),
        Tool("web.search", SearchArgs, _tool_web_search, capability="allow_web",
             usage='{"q": "<query>"} -> documentation pages and examples'),
        Tool("openapi.probe", ProbeArgs, _tool_openapi_probe,
             usage='{"baseVar": "<X_BASE_URL>"} or {"baseUrl": "<url>"} -> try common spec paths'),
        Tool("openapi.load", LoadArgs, _tool_openapi_load,
             usage='{"url": "<spec or doc url>"} -> load and summarize a spec'),
        Tool("http", RequestSpec, _tool_http, capability="allow_http",
             usage='{"method", "url" | "path" + "baseVar"?, "headers"?, "body"?} -> run one HTTP request'),
        Tool("script.save", Script, _tool_script_save,
             usage='{"name", "description"?, "request": {...}} -> save the final request; it runs immediately'),
        Tool("script.run", RunArgs, _tool_script_run,
             usage='{"id": "<script id>"} or {"request": {...}} -> run a saved or inline request'),
    ]
)
