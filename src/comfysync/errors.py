"""Error taxonomy for inference backend calls.

Two layers:

- ``ApiError`` is raised by :class:`~comfysync.client.InferenceClient` when the
  backend answers with something the API contract does not allow (HTTP error
  status, non-JSON body, unexpected payload shape).
- ``SyncFailure`` subclasses are the classified outcomes callers act on. During
  a catalog sync they are logged and absorbed; during the connect handshake
  they are raised to the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import requests

PREVIEW_LIMIT = 500


def body_preview(content: Optional[str], limit: int = PREVIEW_LIMIT) -> str:
    """Return at most ``limit`` characters of a response body."""
    if not content:
        return ""
    return content[:limit]


def looks_like_html(content: Optional[str]) -> bool:
    return bool(content) and content.lstrip().startswith("<")


class FailureKind(str, Enum):
    """Classification tag for a failed backend call."""
    AUTHENTICATION_REDIRECT = "authentication_redirect"
    NON_JSON_RESPONSE = "non_json_response"
    UPSTREAM_HTTP_ERROR = "upstream_http_error"
    TRANSPORT_FAILURE = "transport_failure"
    CANCELLED = "cancelled"


class InferenceClientError(Exception):
    """Base error for inference backend operations."""
    pass


class NotConnected(InferenceClientError):
    """Raised when an operation needs a connected backend."""
    pass


class ApiError(InferenceClientError):
    """The backend responded, but not in a way the API contract allows."""

    def __init__(
        self,
        message: str,
        *,
        method: str = "GET",
        uri: str = "",
        final_uri: str = "",
        status_code: int = 0,
        reason: str = "",
        content: str = "",
        redirect_uri: Optional[str] = None,
    ):
        super().__init__(message)
        self.method = method
        self.uri = uri
        self.final_uri = final_uri or uri
        self.status_code = status_code
        self.reason = reason
        self.content = content
        self.redirect_uri = redirect_uri

    @classmethod
    def from_response(
        cls,
        response: requests.Response,
        message: Optional[str] = None,
    ) -> "ApiError":
        request = response.request
        method = request.method if request is not None else "GET"
        # The first request in the redirect chain is the one we asked for
        origin = response.history[0].request if response.history else request
        uri = origin.url if origin is not None else response.url
        try:
            content = response.text
        except Exception:
            content = ""
        if message is None:
            message = f"{method} {uri} failed: {response.status_code} {response.reason}"
        return cls(
            message,
            method=method or "GET",
            uri=uri or "",
            final_uri=response.url or "",
            status_code=response.status_code,
            reason=response.reason or "",
            content=content,
            redirect_uri=getattr(response, "auth_redirect_uri", None),
        )


class SyncFailure(InferenceClientError):
    """A classified failure of one backend call."""
    kind: FailureKind = FailureKind.TRANSPORT_FAILURE

    def diagnostic(self) -> Dict[str, Any]:
        """Structured fields for log records."""
        return {"classification": self.kind.value}


class AuthenticationRedirect(SyncFailure):
    """The request ended on the access-control login page (HTML body)."""
    kind = FailureKind.AUTHENTICATION_REDIRECT

    def __init__(self, redirect_uri: str, preview: str = ""):
        super().__init__(
            f"Redirected to access-control login page: {redirect_uri}. "
            "Authentication headers are likely missing or incorrect."
        )
        self.redirect_uri = redirect_uri
        self.preview = body_preview(preview)

    def diagnostic(self) -> Dict[str, Any]:
        return {
            "classification": self.kind.value,
            "redirect_uri": self.redirect_uri,
            "preview": self.preview,
        }


class NonJsonResponse(SyncFailure):
    """The backend returned an HTML page where JSON was expected."""
    kind = FailureKind.NON_JSON_RESPONSE

    def __init__(self, uri: str, preview: str = ""):
        super().__init__(f"Received HTML instead of JSON from {uri}")
        self.uri = uri
        self.preview = body_preview(preview)

    def diagnostic(self) -> Dict[str, Any]:
        return {"classification": self.kind.value, "uri": self.uri, "preview": self.preview}


class UpstreamHttpError(SyncFailure):
    """Any other API-level error."""
    kind = FailureKind.UPSTREAM_HTTP_ERROR

    def __init__(self, status: int, reason: str, method: str, uri: str, preview: str = ""):
        super().__init__(f"{method} {uri} failed: {status} {reason}".rstrip())
        self.status = status
        self.reason = reason
        self.method = method
        self.uri = uri
        self.preview = body_preview(preview)

    def diagnostic(self) -> Dict[str, Any]:
        return {
            "classification": self.kind.value,
            "status": self.status,
            "reason": self.reason,
            "method": self.method,
            "uri": self.uri,
            "preview": self.preview,
        }


class TransportFailure(SyncFailure):
    """Network-level failure unrelated to the API contract."""
    kind = FailureKind.TRANSPORT_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def diagnostic(self) -> Dict[str, Any]:
        return {"classification": self.kind.value, "preview": body_preview(self.message)}


class Cancelled(SyncFailure):
    """The operation observed a cancellation request."""
    kind = FailureKind.CANCELLED

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


def classify_failure(exc: BaseException) -> SyncFailure:
    """Map an exception raised by a backend call onto the failure taxonomy."""
    if isinstance(exc, SyncFailure):
        return exc

    if isinstance(exc, ApiError):
        if looks_like_html(exc.content):
            if exc.redirect_uri:
                return AuthenticationRedirect(exc.redirect_uri, exc.content)
            return NonJsonResponse(exc.final_uri or exc.uri, exc.content)
        return UpstreamHttpError(
            exc.status_code,
            exc.reason or str(exc),
            exc.method,
            exc.uri,
            exc.content,
        )

    if isinstance(exc, requests.exceptions.Timeout):
        return TransportFailure(f"Request timed out: {exc}")
    if isinstance(exc, requests.exceptions.ConnectionError):
        return TransportFailure(f"Cannot connect: {exc}")
    if isinstance(exc, requests.RequestException):
        return TransportFailure(f"Transport error: {exc}")

    return TransportFailure(f"{type(exc).__name__}: {exc}")
