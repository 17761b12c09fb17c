"""Error definitions for s3www."""


class GatewayError(Exception):
    """An error raised while serving a bucket over HTTP.

    Attributes:
        code: Short error code string (e.g. "NoSuchKey", "BackendUnavailable").
        message: Human-readable error description.
        http_status: The HTTP status code the error maps to.
    """

    def __init__(self, code: str, message: str, http_status: int = 500) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status


class NoSuchKey(GatewayError):
    """The named object does not exist in the bucket."""

    def __init__(self, key: str = "") -> None:
        super().__init__(
            code="NoSuchKey",
            message=f"The specified key does not exist: {key}" if key else "The specified key does not exist.",
            http_status=404,
        )
        self.key = key


class BackendUnavailable(GatewayError):
    """A listing or retrieval call failed for transport or auth reasons."""

    def __init__(self, message: str = "Object store request failed", code: str = "BackendUnavailable") -> None:
        super().__init__(code=code, message=message, http_status=502)


class NotFound(GatewayError):
    """No fallback candidate for a request path could be resolved."""

    def __init__(self, path: str = "") -> None:
        super().__init__(code="NotFound", message="404 page not found", http_status=404)
        self.path = path


class InvalidRange(GatewayError):
    """The requested range is not satisfiable."""

    def __init__(self, size: int = 0) -> None:
        super().__init__(
            code="InvalidRange",
            message="The requested range is not satisfiable.",
            http_status=416,
        )
        self.size = size


class ConfigError(Exception):
    """Fatal configuration problem detected before serving traffic."""
