"""HTTP transport for the inference backend.

A fixed chain of stages over a caller-supplied base transport:
- RedirectDetector: flags redirects to the access-control login page
- CookieTracker: reports session cookies the backend sets
- HeaderInjector: attaches configured auth headers
"""

from .base import SessionTransport, Transport
from .pipeline import (
    CookieTracker,
    HeaderInjector,
    RedirectDetector,
    TransportPipeline,
    auth_redirect_uri,
    build_pipeline,
    is_login_redirect,
)

__all__ = [
    "Transport",
    "SessionTransport",
    "HeaderInjector",
    "CookieTracker",
    "RedirectDetector",
    "TransportPipeline",
    "auth_redirect_uri",
    "build_pipeline",
    "is_login_redirect",
]
