# discovery.py
# API-discovery helpers: naming-convention spec hints and OpenAPI/Swagger
# probing, loading and summarization.
#
# Every fetch goes through the Gateway, so probes obey the same target
# safety rules as user-intended calls.

import json
import logging
import re
from typing import Any, Mapping

from api_eater.errors import ApiEaterError, UpstreamError
from api_eater.gateway import Gateway
from api_eater.models import SpecDocument, SpecHint, SpecSummary

logger = logging.getLogger(__name__)

SPEC_TEXT_LIMIT = 200_000
SAMPLE_PATHS = 40

SPEC_PATHS = (
    "/openapi.json",
    "/swagger.json",
    "/.well-known/openapi.json",
    "/v3/api-docs",
    "/swagger/v1/swagger.json",
    "/api-docs",
    "/api-docs.json",
    "/api/swagger.json",
    "/openapi.yaml",
    "/swagger.yaml",
    "/swagger/v1/swagger.yaml",
)

_DOC_KEY = re.compile(r"^([A-Z0-9_]+)_(OPENAPI_URL|API_DOC_URL)$")
_BASE_KEY = re.compile(r"^([A-Z0-9_]+)_BASE_URL$")
_TOKEN_KEY = re.compile(r"^([A-Z0-9_]+)_(TOKEN|API_KEY)$")
_YAML_OPENAPI_LINE = re.compile(r"^\s*openapi:", re.MULTILINE)


# ---------------------------------------------------------------------------
# Spec hints
# ---------------------------------------------------------------------------


def collect_spec_hints(env: Mapping[str, str]) -> list[SpecHint]:
    """
    Group *_OPENAPI_URL, *_API_DOC_URL, *_BASE_URL and *_TOKEN / *_API_KEY keys
    by service prefix. Purely advisory; nothing is fetched.
    """
    buckets: dict[str, SpecHint] = {}

    def bucket(service: str) -> SpecHint:
        if service not in buckets:
            buckets[service] = SpecHint(service=service)
        return buckets[service]

    for key, value in env.items():
        doc_match = _DOC_KEY.match(key)
        if doc_match:
            hint = bucket(doc_match.group(1))
            if doc_match.group(2) == "OPENAPI_URL":
                hint.openapi_url = value
            else:
                hint.doc_url = value
            continue

        base_match = _BASE_KEY.match(key)
        if base_match:
            bucket(base_match.group(1)).base_var = key
            continue

        token_match = _TOKEN_KEY.match(key)
        if token_match:
            bucket(token_match.group(1)).token_var = key

    return list(buckets.values())


# ---------------------------------------------------------------------------
# OpenAPI documents
# ---------------------------------------------------------------------------


def parse_openapi_json(text: str) -> dict[str, Any] | None:
    """The parsed document when `text` is JSON with a version field and `paths`."""
    try:
        doc = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(doc, dict):
        return None
    if not (doc.get("openapi") or doc.get("swagger")) or not isinstance(doc.get("paths"), dict):
        return None
    return doc


def summarize_openapi(doc: Mapping[str, Any]) -> SpecSummary:
    paths = doc.get("paths")
    if not isinstance(paths, dict):
        paths = {}
    servers = doc.get("servers")

    sample: dict[str, list[str]] = {}
    for path in list(paths)[:SAMPLE_PATHS]:
        operations = paths[path]
        sample[path] = list(operations) if isinstance(operations, dict) else []

    return SpecSummary(
        openapi=str(doc.get("openapi") or doc.get("swagger") or ""),
        servers=servers if isinstance(servers, list) else [],
        count=len(paths),
        sample=sample,
    )


def probe_openapi(gateway: Gateway, base_url: str) -> SpecDocument:
    """
    Walk SPEC_PATHS under `base_url` and return the first valid OpenAPI document.

    Unsafe bases fail immediately; individual candidates that error or return
    a non-success status are skipped.
    """
    root = str(base_url).rstrip("/")
    gateway.check(root)

    for path in SPEC_PATHS:
        url = root + path
        try:
            result = gateway.get(url)
        except ApiEaterError as exc:
            logger.debug("Probe %s skipped: %s", url, exc)
            continue
        if not result.ok:
            logger.debug("Probe %s -> %s", url, result.status)
            continue

        content_type = result.content_type.lower()
        body = result.body_text
        if "json" in content_type or body.lstrip().startswith("{"):
            doc = parse_openapi_json(body)
            if doc is not None:
                logger.info("OpenAPI spec found at %s", url)
                return SpecDocument(ok=True, url=url, type="json", spec=doc, summary=summarize_openapi(doc))
        if "yaml" in content_type or _YAML_OPENAPI_LINE.search(body):
            logger.info("OpenAPI YAML found at %s", url)
            return SpecDocument(ok=True, url=url, type="yaml", text=body[:SPEC_TEXT_LIMIT])

    return SpecDocument(ok=False, error="Spec not found on common paths")


def load_openapi(gateway: Gateway, url: str) -> SpecDocument:
    """Fetch an explicit spec or documentation URL."""
    result = gateway.get(url)
    if not result.ok:
        raise UpstreamError(f"openapi.load: failed {result.status}")

    doc = parse_openapi_json(result.body_text)
    if doc is not None:
        return SpecDocument(ok=True, type="json", url=url, spec=doc, summary=summarize_openapi(doc))
    return SpecDocument(
        ok=True,
        type=result.content_type or "text",
        url=url,
        text=result.body_text[:SPEC_TEXT_LIMIT],
    )
