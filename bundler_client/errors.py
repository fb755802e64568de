from typing import Any, Optional


class BundlerError(Exception):
    """Base class for every error raised by the bundler client."""


class DialError(BundlerError):
    """The connection to the bundler could not be established."""


class TransportError(BundlerError):
    """The request failed in transit (network error, timeout, HTTP status)."""


class DecodeError(BundlerError):
    """The response does not match the expected JSON-RPC or result shape."""


class RPCError(BundlerError):
    """An error object returned by the bundler."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        super().__init__(f"{message} (code {code})")
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def from_response(cls, error) -> "RPCError":
        if not isinstance(error, dict):
            raise DecodeError(f"Malformed JSON-RPC error object: {error!r}")
        try:
            code = int(error["code"])
            message = str(error["message"])
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(
                f"Malformed JSON-RPC error object: {error!r}"
            ) from e
        return cls(code, message, error.get("data"))
