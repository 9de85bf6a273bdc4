# harness.py
# Orchestration loop.
#
# The Orchestrator is the kernel. The model is a passive responder: it either
# answers in plain text or asks for exactly one tool per turn. This class owns
# all control flow, the step log and the conversation.
#
# Control flow, per chat request:
#   model call → directive? → registry dispatch → feedback appended → repeat
#   until a plain answer, or MAX_TOOL_TURNS tool turns → one final model call.
#
# Tool failures are recorded as failed steps and shown to the model; they
# never end the request. All terminal output is delegated to display.py.

import json
import logging
import re

from api_eater import display
from api_eater.errors import ApiEaterError
from api_eater.llm import ChatModel
from api_eater.models import ChatResult, Message, Step, ToolDirective
from api_eater.tools import TOOLS, ToolContext, ToolOutcome, ToolRegistry

logger = logging.getLogger(__name__)

MAX_TOOL_TURNS = 12
RESULT_CHAR_LIMIT = 4000

_TOOL_BLOCK = re.compile(r"```tool\s+([\s\S]+?)\s+```")


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT_TEMPLATE = """\
You are an integration agent for external HTTP APIs.

Your job: for the user's request, find the API description (OpenAPI/Swagger \
and documentation pages), work out the required operation, and execute it \
correctly over HTTP.

PRINCIPLES:
- Make no assumptions about endpoints. Rely on the specification and/or the \
official documentation.
- Start with hints from the environment (*_OPENAPI_URL, *_API_DOC_URL) via \
spec.hints. Then openapi.load, then read documentation pages (http GET to \
*_API_DOC_URL). Without hints, use web.search and openapi.probe.
- Never hard-code keys or base URLs into scripts: they come from the \
environment (*_BASE_URL, *_TOKEN). If something is missing, ask the user for it.
- Only public http/https targets are reachable; internal addresses are blocked.
- Work iteratively: when a call fails, analyse the error and fix the request \
(parameters, method, headers, path).
- Be concrete: state the method, path, parameters and the minimal headers.

TOOLS (exactly one per turn):
{tools}

TOOL CALL FORMAT: put one JSON object {{"tool": "<name>", "args": {{...}}}} \
inside a ```tool ... ``` block.

FINISH: give a short log of steps (not thoughts): what you found \
(OpenAPI/Docs), which request you ran (method/path, status), what you fixed.\
"""


def build_system_prompt(registry: ToolRegistry = TOOLS) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(tools=registry.usage())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extract_directive(text: str) -> ToolDirective | None:
    """
    Pull the tool directive out of a model reply.

    Returns None when there is no ```tool block or its content is not a JSON
    object; that reply is then treated as the final answer.
    """
    match = _TOOL_BLOCK.search(text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    args = data.get("args")
    return ToolDirective(
        tool=str(data.get("tool") or ""),
        args=args if isinstance(args, dict) else {},
    )


def format_feedback(outcome: ToolOutcome) -> str:
    """Render one outcome as the message the model sees next turn."""
    name = outcome.step.tool
    if outcome.error is not None:
        return f"TOOL ERROR {name}: {outcome.error[:RESULT_CHAR_LIMIT]}"
    payload = json.dumps(outcome.feedback, ensure_ascii=False, default=str)
    return f"TOOL RESULT {name}:\n{payload[:RESULT_CHAR_LIMIT]}"


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """
    Bounded tool loop for one chat request at a time.

    Example:
        orchestrator = Orchestrator(model=OpenAIChatModel(resolver), context=context)
        result = orchestrator.run([Message(role="user", content="List my open issues")])
    """

    def __init__(
        self,
        model: ChatModel,
        context: ToolContext,
        registry: ToolRegistry = TOOLS,
        max_turns: int = MAX_TOOL_TURNS,
    ) -> None:
        self._model = model
        self._context = context
        self._registry = registry
        self._max_turns = max_turns
        self._system_prompt = build_system_prompt(registry)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    def execute(self, directive: ToolDirective, ctx: ToolContext) -> list[ToolOutcome]:
        """Dispatch one directive. Any failure becomes a single failed outcome."""
        try:
            return self._registry.dispatch(directive, ctx)
        except ApiEaterError as exc:
            error = f"{exc.code}: {exc}"
        except Exception as exc:
            logger.exception("Tool %s failed unexpectedly", directive.tool)
            error = f"TOOL_FAILED: {type(exc).__name__}: {exc}"
        step = Step(tool=directive.tool or "unknown", ok=False, error=error)
        return [ToolOutcome(step=step, error=error)]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        messages: list[Message],
        allow_web: bool = True,
        allow_http: bool = True,
    ) -> ChatResult:
        """
        Drive the conversation until the model answers without a directive.

        Always returns a reply: a plain answer, or after the turn cap, whatever
        the final unconstrained call produced.
        """
        display.request_received(messages)
        ctx = self._context.with_capabilities(allow_web=allow_web, allow_http=allow_http)
        conversation = [Message(role="system", content=self._system_prompt), *messages]
        steps: list[Step] = []

        for turn in range(1, self._max_turns + 1):
            display.calling_model(turn, self._max_turns)
            reply = self._model(list(conversation))
            directive = extract_directive(reply.content)

            if directive is None:
                display.final_reply(reply.content)
                return ChatResult(reply=reply, steps=steps)

            conversation.append(reply)
            display.tool_directive(directive)

            for outcome in self.execute(directive, ctx):
                steps.append(outcome.step)
                display.step_recorded(outcome.step)
                conversation.append(Message(role="user", content=format_feedback(outcome)))

        display.turn_cap_reached(self._max_turns)
        reply = self._model(list(conversation))
        display.final_reply(reply.content)
        return ChatResult(reply=reply, steps=steps)
