# errors.py
# Exception taxonomy for the agent. Every domain failure carries a stable code
# so the orchestration loop and the HTTP layer can report it uniformly.


class ApiEaterError(Exception):
    """Base class for all expected, reportable failures."""

    code = "ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnsafeTarget(ApiEaterError):
    """Disallowed scheme or private/loopback/link-local address. Never bypassed."""

    code = "UNSAFE_TARGET"


# Name used by the gateway contract.
BlockedHost = UnsafeTarget


class MissingBase(ApiEaterError):
    """No *_BASE_URL candidate exists and none was specified."""

    code = "MISSING_BASE"


class AmbiguousBase(ApiEaterError):
    """Several *_BASE_URL candidates exist and none was specified."""

    code = "AMBIGUOUS_BASE"


class UnknownTool(ApiEaterError):
    code = "UNKNOWN_TOOL"

    def __init__(self, name: str) -> None:
        super().__init__(f"tool {name!r} is not registered")
        self.name = name


class InvalidArguments(ApiEaterError):
    code = "INVALID_ARGUMENTS"


class CapabilityDisabled(ApiEaterError):
    """Raised when a tool needs web or HTTP access the request turned off."""

    code = "CAPABILITY_DISABLED"


class UpstreamError(ApiEaterError):
    """Transport failure or unusable upstream response. Not retried."""

    code = "UPSTREAM_ERROR"


class ProviderUnavailable(ApiEaterError):
    """A search provider is unconfigured or failing."""

    code = "PROVIDER_UNAVAILABLE"


class ScriptNotFound(ApiEaterError):
    code = "SCRIPT_NOT_FOUND"

    def __init__(self, script_id: str) -> None:
        super().__init__(f"Script not found: {script_id}")
        self.script_id = script_id


class InvalidConnection(ApiEaterError):
    code = "INVALID_CONNECTION"


class InvalidScript(ApiEaterError):
    code = "INVALID_SCRIPT"
