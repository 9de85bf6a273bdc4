import httpx
import pytest

from api_eater.errors import (
    AmbiguousBase,
    CapabilityDisabled,
    InvalidArguments,
    MissingBase,
    ScriptNotFound,
    UnknownTool,
)
from api_eater.models import RequestSpec, ToolDirective
from api_eater.tools import AUTO_RUN, TOOLS, pick_base, resolve_url

DEMO_ENV = {"DEMO_BASE_URL": "https://api.demo.test", "DEMO_TOKEN": "abc123"}

PETSTORE = {"openapi": "3.0.0", "paths": {"/pets": {"get": {}}}}


def _dispatch(ctx, tool, **args):
    return TOOLS.dispatch(ToolDirective(tool=tool, args=args), ctx)


def _recorder(status=200, **body):
    """MockTransport handler that records every request and answers a fresh response."""
    body = body or {"json": {"items": []}}
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(status, **body)

    return handler, seen


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registry_lists_every_tool():
    assert TOOLS.names() == [
        "env.list",
        "spec.hints",
        "web.search",
        "openapi.probe",
        "openapi.load",
        "http",
        "script.save",
        "script.run",
    ]
    for name in TOOLS.names():
        assert f"- {name}:" in TOOLS.usage()


def test_unknown_tool_rejected(make_context):
    with pytest.raises(UnknownTool, match="'db.drop' is not registered"):
        _dispatch(make_context(), "db.drop")


def test_http_disabled_makes_no_network_call(make_context):
    ctx = make_context(process=DEMO_ENV, allow_http=False)
    with pytest.raises(CapabilityDisabled):
        _dispatch(ctx, "http", method="GET", path="/items")


def test_web_search_disabled(make_context):
    with pytest.raises(CapabilityDisabled):
        _dispatch(make_context(allow_web=False), "web.search", q="stripe api")


@pytest.mark.parametrize("args", [{}, {"q": ""}, {"q": "   "}, {"q": 42}])
def test_web_search_needs_a_query(make_context, args):
    with pytest.raises(InvalidArguments, match="web.search"):
        TOOLS.dispatch(ToolDirective(tool="web.search", args=args), make_context())


def test_capability_checked_before_arguments(make_context):
    with pytest.raises(CapabilityDisabled):
        _dispatch(make_context(allow_web=False), "web.search")


# ---------------------------------------------------------------------------
# http
# ---------------------------------------------------------------------------


def test_http_resolves_path_and_injects_token(make_context):
    handler, seen = _recorder()
    outcomes = _dispatch(make_context(handler, process=DEMO_ENV), "http", method="get", path="/items")

    assert len(seen) == 1
    assert str(seen[0].url) == "https://api.demo.test/items"
    assert seen[0].method == "GET"
    assert seen[0].headers["Authorization"] == "Bearer abc123"

    (outcome,) = outcomes
    assert outcome.step.tool == "http"
    assert outcome.step.ok is True
    assert outcome.step.args == {"method": "GET", "url": "https://api.demo.test/items"}
    assert outcome.step.result["status"] == 200
    assert outcome.step.result["contentType"] == "application/json"
    assert outcome.feedback["statusText"] == "OK"
    assert "Authorization" not in str(outcome.step.to_wire())


def test_http_keeps_caller_authorization(make_context):
    handler, seen = _recorder()
    _dispatch(
        make_context(handler, process=DEMO_ENV),
        "http",
        url="https://api.demo.test/me",
        headers={"authorization": "Basic xyz"},
    )
    assert seen[0].headers["authorization"] == "Basic xyz"


def test_http_error_status_is_a_successful_step(make_context):
    handler, _ = _recorder(422, json={"error": "bad"})
    (outcome,) = _dispatch(make_context(handler, process=DEMO_ENV), "http", method="POST", path="items", body={"x": 1})
    assert outcome.step.ok is True
    assert outcome.step.result["ok"] is False
    assert outcome.step.result["status"] == 422


def test_http_sample_is_truncated(make_context):
    handler, _ = _recorder(text="x" * 5000)
    (outcome,) = _dispatch(make_context(handler, process=DEMO_ENV), "http", path="/big")
    assert len(outcome.step.result["sample"]) == 1200
    assert len(outcome.feedback["bodyText"]) == 5000


def test_http_without_url_or_path(make_context):
    with pytest.raises(InvalidArguments, match="No url for http"):
        _dispatch(make_context(process=DEMO_ENV), "http", method="GET")


def test_pick_base_rules():
    two = {"A_BASE_URL": "https://a.test", "B_BASE_URL": "https://b.test"}
    assert pick_base({"A_BASE_URL": "https://a.test"}) == "https://a.test"
    assert pick_base(two, "B_BASE_URL") == "https://b.test"
    with pytest.raises(AmbiguousBase):
        pick_base(two)
    with pytest.raises(MissingBase, match="No \\*_BASE_URL found"):
        pick_base({})


def test_resolve_url_joins_slashes():
    env = {"A_BASE_URL": "https://a.test/v1/"}
    assert resolve_url(env, RequestSpec(path="/users"), "http") == "https://a.test/v1/users"
    assert resolve_url(env, RequestSpec(path="users"), "http") == "https://a.test/v1/users"
    assert resolve_url(env, RequestSpec(url="https://x.test/y", path="/ignored"), "http") == "https://x.test/y"


# ---------------------------------------------------------------------------
# Environment and discovery tools
# ---------------------------------------------------------------------------


def test_env_list_reports_presence_only(make_context):
    (outcome,) = _dispatch(make_context(process={**DEMO_ENV, "EMPTY": ""}), "env.list")
    assert outcome.feedback == {"DEMO_BASE_URL": True, "DEMO_TOKEN": True, "EMPTY": False}
    assert "abc123" not in str(outcome.step.to_wire())


def test_spec_hints_tool(make_context):
    ctx = make_context(process={**DEMO_ENV, "DEMO_OPENAPI_URL": "https://api.demo.test/spec"})
    (outcome,) = _dispatch(ctx, "spec.hints")
    assert outcome.feedback == [
        {
            "service": "DEMO",
            "openapiUrl": "https://api.demo.test/spec",
            "docUrl": None,
            "baseVar": "DEMO_BASE_URL",
            "tokenVar": "DEMO_TOKEN",
        }
    ]


def test_probe_uses_single_base(make_context):
    def handler(request):
        if request.url.path == "/openapi.json":
            return httpx.Response(200, json=PETSTORE)
        return httpx.Response(404)

    (outcome,) = _dispatch(make_context(handler, process=DEMO_ENV), "openapi.probe")
    assert outcome.step.ok is True
    assert outcome.step.args == {"baseUrl": "https://api.demo.test", "baseVar": "DEMO_BASE_URL"}
    assert outcome.feedback["summary"]["count"] == 1


def test_probe_not_found_is_a_failed_step(make_context):
    handler, _ = _recorder(404)
    (outcome,) = _dispatch(make_context(handler), "openapi.probe", baseUrl="https://nospec.test")
    assert outcome.step.ok is False
    assert outcome.feedback["error"] == "Spec not found on common paths"


def test_probe_ambiguous_base(make_context):
    ctx = make_context(process={"A_BASE_URL": "https://a.test", "B_BASE_URL": "https://b.test"})
    with pytest.raises(AmbiguousBase, match="^Specify baseVar or baseUrl for openapi.probe"):
        _dispatch(ctx, "openapi.probe")


def test_probe_missing_base(make_context):
    with pytest.raises(MissingBase, match="^Specify baseVar or baseUrl for openapi.probe"):
        _dispatch(make_context(), "openapi.probe")


def test_openapi_load_tool(make_context):
    handler, _ = _recorder(json=PETSTORE)
    (outcome,) = _dispatch(make_context(handler), "openapi.load", url="https://petstore.test/spec.json")
    assert outcome.step.args == {"url": "https://petstore.test/spec.json"}
    assert outcome.feedback["type"] == "json"


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------


def test_script_save_runs_immediately(make_context, settings):
    handler, seen = _recorder()
    ctx = make_context(handler, process=DEMO_ENV)
    outcomes = _dispatch(ctx, "script.save", name="list items", request={"method": "GET", "path": "/items"})

    assert [o.step.tool for o in outcomes] == ["script.save", AUTO_RUN]
    saved_id = outcomes[0].feedback["id"]
    assert ctx.scripts.get(saved_id).name == "list items"
    assert outcomes[1].step.ok is True
    assert outcomes[1].step.args["url"] == "https://api.demo.test/items"
    assert seen[0].headers["Authorization"] == "Bearer abc123"


def test_script_save_auto_run_failure_is_recorded(make_context):
    outcomes = _dispatch(make_context(), "script.save", name="orphan", request={"path": "/items"})

    save, auto = outcomes
    assert save.step.ok is True
    assert auto.step.tool == AUTO_RUN
    assert auto.step.ok is False
    assert auto.error.startswith("MISSING_BASE: ")


def test_script_save_auto_run_blocked_target(make_context):
    outcomes = _dispatch(make_context(), "script.save", name="meta", request={"url": "http://169.254.169.254/latest"})
    assert outcomes[1].error.startswith("UNSAFE_TARGET: ")


def test_script_save_without_request_does_not_run(make_context):
    outcomes = _dispatch(make_context(), "script.save", name="draft")
    assert [o.step.tool for o in outcomes] == ["script.save"]


def test_script_run_by_id(make_context):
    handler, seen = _recorder()
    ctx = make_context(handler, process=DEMO_ENV)
    (save,) = _dispatch(ctx, "script.save", name="draft")
    ctx.scripts.upsert(
        ctx.scripts.get(save.feedback["id"]).model_copy(update={"request": RequestSpec(method="DELETE", path="/items/7")})
    )

    (outcome,) = _dispatch(ctx, "script.run", id=save.feedback["id"])
    assert outcome.step.tool == "script.run"
    assert seen[0].method == "DELETE"
    assert str(seen[0].url) == "https://api.demo.test/items/7"


def test_script_run_inline_request(make_context):
    handler, seen = _recorder()
    _dispatch(make_context(handler), "script.run", request={"url": "https://public.test/ping"})
    assert str(seen[0].url) == "https://public.test/ping"


def test_script_run_unknown_id(make_context):
    with pytest.raises(ScriptNotFound, match="Script not found: nope"):
        _dispatch(make_context(), "script.run", id="nope")


def test_script_run_needs_a_request(make_context):
    with pytest.raises(InvalidArguments, match="No request provided"):
        _dispatch(make_context(), "script.run")
