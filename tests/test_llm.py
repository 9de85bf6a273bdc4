from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
from openai import APIConnectionError

from api_eater.config import ConfigResolver, EnvSources
from api_eater.llm import OpenAIChatModel
from api_eater.models import Message


def _model(process, client=None):
    factory = MagicMock(return_value=client or MagicMock())
    return OpenAIChatModel(ConfigResolver(EnvSources(process=process)), client_factory=factory), factory


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_missing_key_is_reported_without_calling_the_api():
    model, factory = _model({})
    reply = model([Message(role="user", content="hi")])

    assert reply.role == "assistant"
    assert "OPENAI_API_KEY" in reply.content
    factory.assert_not_called()


def test_completion_uses_configured_model_and_endpoint():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("  Done.  ")
    model, factory = _model(
        {"OPENAI_API_KEY": "sk-test", "OPENAI_MODEL": "gpt-4o-mini", "OPENAI_BASE_URL": "https://llm.test/v1"},
        client,
    )

    reply = model([Message(role="system", content="sys"), Message(role="user", content="hi")])

    assert reply == Message(role="assistant", content="Done.")
    factory.assert_called_once_with(api_key="sk-test", base_url="https://llm.test/v1")
    client.chat.completions.create.assert_called_once_with(
        model="gpt-4o-mini",
        messages=[{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
    )


def test_default_model_and_endpoint():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(None)
    model, factory = _model({"OPENAI_API_KEY": "sk-test"}, client)

    assert model([]).content == ""
    factory.assert_called_once_with(api_key="sk-test", base_url=None)
    assert client.chat.completions.create.call_args.kwargs["model"] == "gpt-5"


def test_api_error_becomes_assistant_message():
    client = MagicMock()
    client.chat.completions.create.side_effect = APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    )
    model, _ = _model({"OPENAI_API_KEY": "sk-test"}, client)

    reply = model([Message(role="user", content="hi")])
    assert reply.content.startswith("Model error (gpt-5): ")


def test_empty_choices():
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(choices=[])
    model, _ = _model({"OPENAI_API_KEY": "sk-test"}, client)
    assert model([]).content == "Empty model response."
