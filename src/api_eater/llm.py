# llm.py
# Model adapter: conversation in, one assistant message out.
#
# Credentials and model name are read from the resolved environment on every
# call, so edits to .env or env.json apply to the next turn. Failures never
# raise; they come back as an assistant message the user can read.

from typing import Callable

from openai import OpenAI, OpenAIError

from api_eater.config import DEFAULT_MODEL, ConfigResolver
from api_eater.models import Message

ChatModel = Callable[[list[Message]], Message]


class OpenAIChatModel:
    """Chat-completions backed model. Any OpenAI-compatible endpoint works via OPENAI_BASE_URL."""

    def __init__(self, resolver: ConfigResolver, client_factory: Callable[..., OpenAI] = OpenAI) -> None:
        self._resolver = resolver
        self._client_factory = client_factory

    def __call__(self, messages: list[Message]) -> Message:
        env = self._resolver.resolve()
        api_key = env.get("OPENAI_API_KEY")
        if not api_key:
            return Message(role="assistant", content="OPENAI_API_KEY is not set. Add it to the .env file.")

        model = env.get("OPENAI_MODEL") or DEFAULT_MODEL
        client = self._client_factory(api_key=api_key, base_url=env.get("OPENAI_BASE_URL") or None)
        try:
            response = client.chat.completions.create(
                model=model,
                messages=[m.model_dump() for m in messages],
            )
        except OpenAIError as exc:
            return Message(role="assistant", content=f"Model error ({model}): {exc}")

        if not response.choices:
            return Message(role="assistant", content="Empty model response.")
        return Message(role="assistant", content=(response.choices[0].message.content or "").strip())
