from __future__ import annotations
from typing import Any, Optional


class SoapError(Exception):
    """Base client error. ``response`` is set once an HTTP response has arrived."""

    def __init__(self, *args: Any, response: Any = None):
        super().__init__(*args)
        self.response = response


class SerializationError(SoapError):
    """Request payload could not be encoded."""


class TransportError(SoapError):
    """HTTP/IO transport issues."""


class DeserializationError(SoapError):
    """Response body is not a valid SOAP envelope."""


class Fault(SoapError):
    """SOAP Fault returned by server.

    Lives on ``Body.fault`` after decoding and is raised as-is by ``Client.call``.
    """
    def __init__(self, code: str = "", string: str = "", actor: Optional[str] = None, detail: Any = None):
        super().__init__(f"{code}: {string}")
        self.code = code
        self.string = string
        self.actor = actor
        self.detail = detail

    @property
    def local_code(self) -> str:
        # "soap:Client" -> "Client"
        return self.code.rsplit(":", 1)[-1]

    def __eq__(self, other):
        if not isinstance(other, Fault):
            return NotImplemented
        return (self.code, self.string, self.actor, self.detail) == (
            other.code, other.string, other.actor, other.detail
        )

    def __hash__(self):
        # detail may be a dict
        return hash((self.code, self.string, self.actor))

    def __repr__(self) -> str:
        return f"Fault(code={self.code!r}, string={self.string!r}, actor={self.actor!r})"

    def __reduce__(self):
        """Keep structured fields across pickle/unpickle."""
        return (type(self), (self.code, self.string, self.actor, self.detail))
