# models.py
# Data contracts for the API-integration agent.
# No business logic lives here. Pure schema and validation.
#
# Records that cross the HTTP or model boundary serialize as camelCase JSON
# (baseUrl, statusText, ...) via WireModel; Python code uses snake_case.

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for records that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """One role-tagged conversation entry."""

    role: str = Field(..., description="system, user or assistant.")
    content: str = Field(default="")

    @field_validator("content", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ToolDirective(BaseModel):
    """The single tool invocation a model turn may request."""

    tool: str = Field(default="", description="Registered tool name.")
    args: dict[str, Any] = Field(default_factory=dict)


class Step(BaseModel):
    """Append-only log entry for one executed directive."""

    model_config = ConfigDict(frozen=True)

    tool: str
    ok: bool
    args: dict[str, Any] | None = None
    result: Any = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, mode="json")


class ChatRequest(WireModel):
    messages: list[Message] = Field(default_factory=list)
    allow_web: bool = True
    allow_http: bool = True


class ChatResult(BaseModel):
    reply: Message
    steps: list[Step] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {"reply": self.reply.model_dump(), "steps": [s.to_wire() for s in self.steps]}


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class Connection(WireModel):
    """A named external API: base URL, static secret and description URLs."""

    id: str
    name: str = ""
    base_url: str = ""
    token: str = ""
    openapi_url: str = ""
    api_doc_url: str = ""


class RequestSpec(WireModel):
    """Request template shared by http, script.save and script.run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    method: str = "GET"
    url: str | None = None
    path: str | None = None
    base_var: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        if value is None or value == "":
            return "GET"
        return str(value).strip().upper()

    @field_validator("headers", mode="before")
    @classmethod
    def _none_headers(cls, value: Any) -> Any:
        return {} if value is None else value


class Script(WireModel):
    """A saved request template. Unknown keys are kept verbatim."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str | None = None
    name: str = ""
    description: str | None = None
    request: RequestSpec | None = None
    created_at: str | None = None
    updated_at: str | None = None


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


class SpecHint(WireModel):
    """Naming-convention pointer to a service's API description."""

    service: str
    openapi_url: str | None = None
    doc_url: str | None = None
    base_var: str | None = None
    token_var: str | None = None

    def to_wire(self) -> dict[str, Any]:
        # Unset fields are reported as null, not dropped.
        return self.model_dump(by_alias=True, mode="json")


class HttpResult(WireModel):
    """Normalized outcome of every outbound call."""

    ok: bool
    status: int
    status_text: str = ""
    duration_ms: int = 0
    size_bytes: int = 0
    headers: dict[str, str] = Field(default_factory=dict)
    body_text: str = ""
    content_type: str = ""


class SearchResult(WireModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    display_url: str = ""


class SpecSummary(BaseModel):
    openapi: str = ""
    servers: list[Any] = Field(default_factory=list)
    count: int = 0
    sample: dict[str, list[str]] = Field(default_factory=dict)


class SpecDocument(WireModel):
    """Result of openapi.probe / openapi.load."""

    ok: bool
    url: str | None = None
    type: str | None = None
    spec: dict[str, Any] | None = None
    summary: SpecSummary | None = None
    text: str | None = None
    error: str | None = None
