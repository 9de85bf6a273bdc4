# gateway.py
# Safety-gated outbound HTTP.
#
# Every call, discovery probes included, passes assert_public_url() before a
# socket is opened. The same check is installed as an httpx request hook so
# redirect hops are held to it too. There is no bypass.
#
# Credential injection lives here as a helper but is applied by the tool
# registry, not by Gateway.call().

import ipaddress
import json
import logging
import socket
import time
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

import httpx

from api_eater.errors import InvalidArguments, UnsafeTarget, UpstreamError
from api_eater.models import HttpResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "api-eater/1.0"

BLOCKED_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
    )
)

TOKEN_CANDIDATES = ("{prefix}_TOKEN", "{prefix}_API_KEY", "API_TOKEN", "TOKEN", "API_KEY")

HostResolver = Callable[[str], list[str]]


# ---------------------------------------------------------------------------
# Target safety
# ---------------------------------------------------------------------------


def resolve_host(host: str) -> list[str]:
    """All addresses a host name resolves to."""
    return [info[4][0] for info in socket.getaddrinfo(host, None)]


def is_blocked_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip in network for network in BLOCKED_NETWORKS)


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def assert_public_url(url: str, resolver: HostResolver = resolve_host) -> None:
    """
    Raise UnsafeTarget unless `url` is http(s) and its host is publicly routable.

    Literal IPs are checked directly; names are resolved and every resolved
    address must be outside the blocked ranges.
    """
    try:
        parts = urlsplit(str(url))
        host = parts.hostname
    except ValueError as exc:
        raise InvalidArguments(f"Invalid URL {url!r}: {exc}") from exc
    if parts.scheme.lower() not in ("http", "https"):
        raise UnsafeTarget("Only http/https are allowed")

    if not host:
        raise UnsafeTarget(f"URL has no host: {url}")

    if _is_ip_literal(host):
        if is_blocked_address(host):
            raise UnsafeTarget("Private IPs are blocked")
        return

    try:
        addresses = resolver(host)
    except OSError as exc:
        raise UpstreamError(f"Cannot resolve host {host}: {exc}") from exc

    if any(is_blocked_address(a) for a in addresses):
        raise UnsafeTarget("Private IPs are blocked")


# ---------------------------------------------------------------------------
# Credential injection
# ---------------------------------------------------------------------------


_DEFAULT_PORTS = {"http": 80, "https": 443}


def _host_of(url: str) -> str | None:
    """host[:port] with the scheme's default port dropped."""
    try:
        parts = urlsplit(url)
        if not parts.hostname:
            return None
        port = parts.port
    except ValueError:
        return None
    if port is None or _DEFAULT_PORTS.get(parts.scheme.lower()) == port:
        return parts.hostname
    return f"{parts.hostname}:{port}"


def has_header(headers: Mapping[str, Any], name: str) -> bool:
    wanted = name.lower()
    return any(str(k).lower() == wanted for k in headers)


def find_token_for_url(env: Mapping[str, str], url: str) -> str | None:
    """Secret for the service whose *_BASE_URL host matches `url`'s host."""
    target = _host_of(url)
    if target is None:
        return None

    for key, base in env.items():
        if not key.endswith("_BASE_URL") or not base:
            continue
        if _host_of(base.rstrip("/")) != target:
            continue
        prefix = key[: -len("_BASE_URL")]
        for template in TOKEN_CANDIDATES:
            value = env.get(template.format(prefix=prefix))
            if value:
                return value
    return None


def inject_credentials(
    env: Mapping[str, str], url: str, headers: Mapping[str, str] | None
) -> dict[str, str]:
    """Return a copy of `headers` with a Bearer token added when none was supplied."""
    out = dict(headers or {})
    if has_header(out, "authorization"):
        return out
    token = find_token_for_url(env, url)
    if token:
        out["Authorization"] = f"Bearer {token}"
    return out


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


def _encode_body(body: Any) -> str | bytes | None:
    if body is None:
        return None
    if isinstance(body, (str, bytes)):
        return body
    return json.dumps(body, ensure_ascii=False)


class Gateway:
    """
    The single outbound HTTP path.

    `transport` and `resolver` are injectable so tests never touch the
    network or DNS.
    """

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        resolver: HostResolver = resolve_host,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._resolver = resolver
        self._timeout = timeout

    def check(self, url: str) -> None:
        assert_public_url(url, self._resolver)

    def _check_request(self, request: httpx.Request) -> None:
        self.check(str(request.url))

    def _client(self) -> httpx.Client:
        return httpx.Client(
            transport=self._transport,
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            event_hooks={"request": [self._check_request]},
        )

    def call(
        self,
        method: str = "GET",
        url: str = "",
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> HttpResult:
        method = (method or "GET").upper()
        self.check(url)

        send_headers = {str(k): str(v) for k, v in (headers or {}).items()}
        content = None
        if method not in ("GET", "HEAD"):
            content = _encode_body(body)
            text = content.decode("utf-8", "ignore") if isinstance(content, bytes) else content
            if text and not has_header(send_headers, "content-type") and text.lstrip().startswith("{"):
                send_headers["content-type"] = "application/json"

        logger.debug("%s %s", method, url)
        started = time.perf_counter()
        try:
            with self._client() as client:
                response = client.request(method, url, headers=send_headers, content=content)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {url} failed: {exc}") from exc
        except (httpx.InvalidURL, ValueError, UnicodeError) as exc:
            raise InvalidArguments(f"{method} {url} rejected: {exc}") from exc
        duration_ms = int((time.perf_counter() - started) * 1000)

        raw = response.content
        response_headers = dict(response.headers)
        return HttpResult(
            ok=response.is_success,
            status=response.status_code,
            status_text=response.reason_phrase,
            duration_ms=duration_ms,
            size_bytes=len(raw),
            headers=response_headers,
            body_text=raw.decode("utf-8", errors="replace"),
            content_type=response_headers.get("content-type", ""),
        )

    def get(self, url: str) -> HttpResult:
        return self.call("GET", url, {})
