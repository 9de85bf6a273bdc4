import httpx
import pytest

from api_eater.config import ConfigResolver, EnvSources, Settings
from api_eater.gateway import Gateway
from api_eater.search import WebSearch
from api_eater.store import ScriptStore
from api_eater.tools import ToolContext

PUBLIC_IP = "93.184.216.34"


def public_dns(host: str) -> list[str]:
    return [PUBLIC_IP]


def refuse_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected network call: {request.method} {request.url}")


@pytest.fixture
def settings(tmp_path):
    return Settings(home=tmp_path)


@pytest.fixture
def make_context(settings):
    """
    Build a ToolContext rooted in tmp_path whose outbound HTTP goes to
    `handler` (an httpx.MockTransport handler) and whose DNS is fake.
    """

    def _make(handler=refuse_network, process=None, resolver=public_dns, **flags) -> ToolContext:
        transport = httpx.MockTransport(handler)
        return ToolContext(
            resolver=ConfigResolver(EnvSources.from_settings(settings, process or {})),
            gateway=Gateway(transport=transport, resolver=resolver),
            scripts=ScriptStore(settings.scripts_file),
            search=WebSearch(transport=transport),
            **flags,
        )

    return _make
