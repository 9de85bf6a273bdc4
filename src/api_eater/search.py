# search.py
# Web search with ordered provider fallback.
#
# Keyed providers are tried in order; a provider with no credentials or any
# failure falls through silently to the next. The keyless DuckDuckGo HTML
# scrape always runs last. Exactly one provider's results are returned; they
# are never merged.

import html
import logging
import re
from typing import Callable, Mapping
from urllib.parse import parse_qs, urljoin, urlsplit

import httpx

from api_eater.errors import ProviderUnavailable
from api_eater.gateway import DEFAULT_TIMEOUT, USER_AGENT
from api_eater.models import SearchResult

logger = logging.getLogger(__name__)

MAX_RESULTS = 6
DEFAULT_PROVIDERS = ("bing", "serpapi", "google", "brave")

_DDG_HTML = "https://html.duckduckgo.com/html/"
_DDG_ANCHOR = re.compile(r'<a[^>]+class="result__a"[^>]+href="([^"]+)"[^>]*>(.*?)</a>', re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_SCHEME = re.compile(r"^https?://")

Provider = Callable[[httpx.Client, str, Mapping[str, str]], list[SearchResult]]


def _require(env: Mapping[str, str], *keys: str) -> list[str]:
    values = [env.get(k) or "" for k in keys]
    if not all(values):
        raise ProviderUnavailable(f"missing {' / '.join(keys)}")
    return values


def _display(url: str) -> str:
    return _SCHEME.sub("", url)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def _search_bing(client: httpx.Client, q: str, env: Mapping[str, str]) -> list[SearchResult]:
    (key,) = _require(env, "BING_SEARCH_API_KEY")
    response = client.get(
        "https://api.bing.microsoft.com/v7.0/search",
        params={"q": q, "mkt": "en-US"},
        headers={"Ocp-Apim-Subscription-Key": key},
    )
    response.raise_for_status()
    items = (response.json().get("webPages") or {}).get("value") or []
    return [
        SearchResult(
            title=x.get("name", ""),
            url=x.get("url", ""),
            snippet=x.get("snippet", ""),
            display_url=x.get("displayUrl", ""),
        )
        for x in items[:MAX_RESULTS]
    ]


def _search_serpapi(client: httpx.Client, q: str, env: Mapping[str, str]) -> list[SearchResult]:
    (key,) = _require(env, "SERPAPI_API_KEY")
    response = client.get(
        "https://serpapi.com/search.json",
        params={"engine": "google", "q": q, "api_key": key},
    )
    response.raise_for_status()
    items = response.json().get("organic_results") or []
    return [
        SearchResult(
            title=x.get("title", ""),
            url=x.get("link", ""),
            snippet=x.get("snippet", ""),
            display_url=x.get("displayed_link", ""),
        )
        for x in items[:MAX_RESULTS]
    ]


def _search_google(client: httpx.Client, q: str, env: Mapping[str, str]) -> list[SearchResult]:
    key, cx = _require(env, "GOOGLE_API_KEY", "GOOGLE_CSE_ID")
    response = client.get(
        "https://www.googleapis.com/customsearch/v1",
        params={"key": key, "cx": cx, "q": q},
    )
    response.raise_for_status()
    items = response.json().get("items") or []
    return [
        SearchResult(
            title=x.get("title", ""),
            url=x.get("link", ""),
            snippet=x.get("snippet", ""),
            display_url=x.get("displayLink", ""),
        )
        for x in items[:MAX_RESULTS]
    ]


def _search_brave(client: httpx.Client, q: str, env: Mapping[str, str]) -> list[SearchResult]:
    (key,) = _require(env, "BRAVE_SEARCH_API_KEY")
    response = client.get(
        "https://api.search.brave.com/res/v1/web/search",
        params={"q": q},
        headers={"X-Subscription-Token": key},
    )
    response.raise_for_status()
    items = (response.json().get("web") or {}).get("results") or []
    return [
        SearchResult(
            title=x.get("title", ""),
            url=x.get("url", ""),
            snippet=x.get("description", ""),
            display_url=(x.get("meta_url") or {}).get("display_url") or x.get("url", ""),
        )
        for x in items[:MAX_RESULTS]
    ]


def _search_ddgs(client: httpx.Client, q: str, env: Mapping[str, str]) -> list[SearchResult]:
    from ddgs import DDGS

    # Coerce the generator to a list to ensure actual execution
    items = list(DDGS().text(q, max_results=MAX_RESULTS))
    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("href", ""),
            snippet=r.get("body", ""),
            display_url=_display(r.get("href", "")),
        )
        for r in items[:MAX_RESULTS]
    ]


def _decode_result_href(href: str) -> str | None:
    """Unwrap DuckDuckGo's /l/?uddg=<target> redirect links. None when the href is unparseable."""
    try:
        absolute = urljoin(_DDG_HTML, html.unescape(href))
        target = parse_qs(urlsplit(absolute).query).get("uddg")
    except ValueError:
        return None
    return target[0] if target else absolute


def scrape_duckduckgo(client: httpx.Client, q: str) -> list[SearchResult]:
    """Keyless fallback: pull result anchors out of the DuckDuckGo HTML page."""
    response = client.get(_DDG_HTML, params={"q": q})
    response.raise_for_status()

    results: list[SearchResult] = []
    for match in _DDG_ANCHOR.finditer(response.text):
        if len(results) >= MAX_RESULTS:
            break
        url = _decode_result_href(match.group(1))
        if url is None:
            continue
        title = html.unescape(_TAG.sub("", match.group(2)))
        results.append(SearchResult(title=title, url=url, snippet="", display_url=_display(url)))
    return results


PROVIDERS: dict[str, Provider] = {
    "bing": _search_bing,
    "serpapi": _search_serpapi,
    "google": _search_google,
    "brave": _search_brave,
    "ddgs": _search_ddgs,
}


def provider_order(env: Mapping[str, str]) -> list[str]:
    """SEARCH_PROVIDERS (comma-separated) when set, else the default order."""
    raw = env.get("SEARCH_PROVIDERS", "")
    if not raw.strip():
        return list(DEFAULT_PROVIDERS)
    order: list[str] = []
    for name in (n.strip().lower() for n in raw.split(",")):
        if not name:
            continue
        if name not in PROVIDERS:
            logger.warning("Unknown search provider %r ignored", name)
            continue
        order.append(name)
    return order


# ---------------------------------------------------------------------------
# WebSearch
# ---------------------------------------------------------------------------


class WebSearch:
    """Runs the provider chain against the environment of the current request."""

    def __init__(self, transport: httpx.BaseTransport | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.Client:
        return httpx.Client(
            transport=self._transport,
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def search(self, q: str, env: Mapping[str, str]) -> list[SearchResult]:
        with self._client() as client:
            for name in provider_order(env):
                try:
                    results = PROVIDERS[name](client, q, env)
                except ProviderUnavailable as exc:
                    logger.debug("Search provider %s skipped: %s", name, exc)
                    continue
                except Exception as exc:
                    logger.debug("Search provider %s failed: %s", name, exc)
                    continue
                logger.info("Search %r answered by %s (%d results)", q, name, len(results))
                return results

            try:
                return scrape_duckduckgo(client, q)
            except httpx.HTTPError as exc:
                logger.warning("All search providers failed for %r", q)
                raise ProviderUnavailable(f"all search providers failed: {exc}") from exc
