# run.py
# Entry point. Config and wiring only. No logic lives here.
#
#   api-eater serve            start the HTTP API (uvicorn)
#   api-eater ask "<prompt>"   run one request through the tool loop
#   api-eater env              show the masked environment and missing keys

import logging
import os
from typing import Optional

import typer
import uvicorn
from rich.logging import RichHandler

from api_eater import display
from api_eater.config import DEFAULT_MODEL, Settings
from api_eater.harness import Orchestrator
from api_eater.llm import OpenAIChatModel
from api_eater.models import Message
from api_eater.tools import ToolContext

app = typer.Typer(
    name="api-eater",
    help="Turn a natural-language request into one verified HTTP call.",
    no_args_is_help=True,
)


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=display.console, rich_tracebacks=True)],
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: HOST or 0.0.0.0)."),
    port: Optional[int] = typer.Option(None, help="Port (default: PORT or 4001)."),
) -> None:
    """Start the HTTP API."""
    _configure_logging()
    settings = Settings.from_env()
    uvicorn.run(
        "api_eater.server:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="What you want done against the API."),
    web: bool = typer.Option(True, "--web/--no-web", help="Allow web.search."),
    http: bool = typer.Option(True, "--http/--no-http", help="Allow the http tool."),
) -> None:
    """Run one request through the tool loop in the terminal."""
    _configure_logging()
    settings = Settings.from_env()
    context = ToolContext.from_settings(settings)
    env = context.resolver.resolve()
    display.banner(env.get("OPENAI_MODEL") or DEFAULT_MODEL, str(settings.home))

    orchestrator = Orchestrator(model=OpenAIChatModel(context.resolver), context=context)
    result = orchestrator.run([Message(role="user", content=prompt)], allow_web=web, allow_http=http)
    display.steps_summary(result.steps)


@app.command()
def env() -> None:
    """Show the allow-listed environment (secrets masked) and missing keys."""
    context = ToolContext.from_settings(Settings.from_env())
    display.env_view(context.resolver.public_view(), context.resolver.missing_required())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
