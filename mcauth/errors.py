from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .classify import Category
    from .transport import NetworkError


class AuthException(Exception):
    """Base class for auth-related errors.

    Attributes
    ----------
    code : str | None
        A short machine-friendly error code (e.g., "UHS-MISMATCH", "XSTS-UNDERAGE").
    detail : str | None
        Optional extra detail (e.g., server response text).
    """

    def __init__(
        self, message: str = "", *, code: str | None = None, detail: str | None = None
    ):
        super().__init__(message)
        self.code = code
        self.detail = detail

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {super().__str__()}"
        return super().__str__()


class ConcurrentActivity(AuthException):
    """Raised when a run is started while another one is still working."""

    def __init__(self, message: str = "An authentication run is already in progress."):
        super().__init__(message, code="CONCURRENT")


class TransportError(AuthException):
    """The transport reported a network-level failure for a request."""

    def __init__(self, message: str, kind: NetworkError, *, detail: str | None = None):
        super().__init__(message, code="TRANSPORT", detail=detail)
        self.kind = kind


class ProtocolParseError(AuthException):
    """A response payload did not have the shape we require."""

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message, code="PARSE", detail=detail)


class ConsistencyError(AuthException):
    """The user hash of a derived token does not match the user token."""

    def __init__(self, message: str):
        super().__init__(message, code="UHS-MISMATCH")


class UpstreamAuthorizationError(AuthException):
    """XSTS refused to authorize; carries the classified XErr codes."""

    def __init__(self, message: str, codes: Iterable[int], category: Category):
        super().__init__(message, code=f"XSTS-{category.name.replace('_', '-')}")
        self.codes = frozenset(codes)
        self.category = category


class ResourceMissing(AuthException):
    """Raised when the account does not own a Minecraft: Java Edition profile."""

    def __init__(self, message: str):
        super().__init__(message, code="MC-NO-PROFILE")


class AdvisoryFailure(AuthException):
    """A non-fatal stage failed; logged and otherwise ignored."""

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message, code="ADVISORY", detail=detail)
