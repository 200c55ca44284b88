"""Request/response pipeline in front of the base transport.

Stage order, outermost to innermost::

    RedirectDetector -> CookieTracker -> HeaderInjector -> base transport

Header injection sits next to the wire so no other stage can drop a header.
Redirect detection wraps everything so it sees the final response, after the
base transport has followed redirects.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

import requests
from requests.exceptions import InvalidHeader
from requests.utils import check_header_validity

from ..config import DEFAULT_LOGIN_DOMAIN, DEFAULT_SESSION_COOKIES, AuthContext
from ..urls import authority, hostname
from .base import Transport

logger = logging.getLogger(__name__)

# Managed by the HTTP stack itself; user-supplied values are refused.
RESTRICTED_HEADERS = frozenset({"host", "content-length", "transfer-encoding", "connection"})


class TransportStage(Transport):
    """A transport that delegates to an inner one."""

    def __init__(self, inner: Transport):
        self.inner = inner

    def prepare(self, request: requests.Request) -> requests.PreparedRequest:
        return self.inner.prepare(request)

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        return self.inner.send(prepared, **kwargs)

    def close(self) -> None:
        self.inner.close()


class HeaderInjector(TransportStage):
    """Attaches every configured header to outbound requests."""

    def __init__(self, inner: Transport, headers: Optional[Mapping[str, str]] = None):
        super().__init__(inner)
        self.headers: Dict[str, str] = dict(headers or {})

    def apply(self, target: MutableMapping[str, str]) -> List[str]:
        """Copy headers into ``target``; return the names that were set.

        Entries with an empty key or value are skipped silently. A header the
        HTTP stack refuses is logged and skipped, the rest still apply.
        """
        applied: List[str] = []
        for name, value in self.headers.items():
            if not name or not value:
                continue

            if name.strip().lower() in RESTRICTED_HEADERS:
                logger.error(
                    "Failed to add header '%s' to request. This is a restricted header.",
                    name,
                )
                continue

            try:
                check_header_validity((name, value))
            except InvalidHeader as e:
                logger.error(
                    "Failed to add header '%s' to request. The header name/value "
                    "format is invalid: %s",
                    name,
                    e,
                )
                continue

            target[name] = value
            applied.append(name)
        return applied

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        if self.headers:
            applied = self.apply(prepared.headers)
            logger.debug(
                "Added %d authentication header(s) to request %s %s",
                len(applied),
                prepared.method,
                prepared.url,
            )
        else:
            logger.debug(
                "No authentication headers configured for request %s %s",
                prepared.method,
                prepared.url,
            )
        return self.inner.send(prepared, **kwargs)


def _set_cookie_names(response: requests.Response) -> List[str]:
    names = list(response.cookies.keys())

    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        values = raw_headers.getlist("Set-Cookie")
    else:
        header = response.headers.get("Set-Cookie")
        values = [header] if header else []

    for value in values:
        name = value.split(";", 1)[0].split("=", 1)[0].strip()
        if name and name not in names:
            names.append(name)
    return names


class CookieTracker(TransportStage):
    """Reports session cookies the backend sets.

    Storage and replay are left to the base transport's cookie store; this
    stage only records when a recognized session cookie first shows up.
    """

    def __init__(self, inner: Transport, session_cookies: Iterable[str] = DEFAULT_SESSION_COOKIES):
        super().__init__(inner)
        self.session_cookies = {c.lower() for c in session_cookies}
        self.observed: Dict[str, str] = {}

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        cookie = prepared.headers.get("Cookie")
        if cookie:
            names = [c.split("=", 1)[0].strip() for c in cookie.split(";")]
            logger.debug(
                "Sending cookies with request %s %s: %s",
                prepared.method,
                prepared.url,
                ", ".join(names),
            )

        response = self.inner.send(prepared, **kwargs)

        for hop in [*response.history, response]:
            for name in _set_cookie_names(hop):
                logger.debug(
                    "Received Set-Cookie '%s' from response %s %s",
                    name,
                    hop.status_code,
                    hop.url or prepared.url,
                )
                if name.lower() in self.session_cookies and name not in self.observed:
                    self.observed[name] = authority(prepared.url)
                    logger.info(
                        "Captured %s session cookie; it will be sent with subsequent requests to %s",
                        name,
                        self.observed[name],
                    )

        return response

    def has_session(self) -> bool:
        return bool(self.observed)


def is_login_redirect(requested_uri: Optional[str], final_uri: Optional[str], login_domain: str) -> bool:
    """True when the request ended on the login domain, away from where it started."""
    if not login_domain or not final_uri:
        return False
    if login_domain.lower() not in hostname(final_uri):
        return False
    return authority(final_uri) != authority(requested_uri)


def auth_redirect_uri(response: requests.Response) -> Optional[str]:
    """The login page URI flagged by :class:`RedirectDetector`, if any."""
    return getattr(response, "auth_redirect_uri", None)


class RedirectDetector(TransportStage):
    """Flags responses that were redirected to the access-control login page.

    The flag is stored on the response as ``auth_redirect_uri``.
    """

    def __init__(self, inner: Transport, login_domain: str = DEFAULT_LOGIN_DOMAIN):
        super().__init__(inner)
        self.login_domain = login_domain

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        requested = prepared.url
        response = self.inner.send(prepared, **kwargs)
        final = response.url or requested

        if is_login_redirect(requested, final, self.login_domain):
            response.auth_redirect_uri = final
            final_request = response.request if response.request is not None else prepared
            sent = ", ".join(final_request.headers.keys()) or "none"
            logger.warning(
                "Request to %s was redirected to the access-control login page: %s. "
                "This usually means authentication headers are missing or incorrect. "
                "Header names sent: %s",
                requested,
                final,
                sent,
            )
        else:
            response.auth_redirect_uri = None

        return response


class TransportPipeline(Transport):
    """The assembled stage chain over a caller-supplied base transport."""

    def __init__(self, base: Transport, auth: Optional[AuthContext] = None):
        auth = auth or AuthContext()
        self.base = base
        self.auth = auth
        self.header_injector = HeaderInjector(base, auth.headers)
        self.cookie_tracker = CookieTracker(self.header_injector, auth.session_cookies)
        self.redirect_detector = RedirectDetector(self.cookie_tracker, auth.login_domain)

    @property
    def stages(self) -> List[Transport]:
        """Stages outermost first, ending with the base transport."""
        return [self.redirect_detector, self.cookie_tracker, self.header_injector, self.base]

    def prepare(self, request: requests.Request) -> requests.PreparedRequest:
        return self.redirect_detector.prepare(request)

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        return self.redirect_detector.send(prepared, **kwargs)

    def upgrade_headers(self) -> Dict[str, str]:
        """Headers for a streaming/upgrade handshake, filtered the same way."""
        headers: Dict[str, str] = {}
        self.header_injector.apply(headers)
        return headers

    def close(self) -> None:
        self.redirect_detector.close()


def build_pipeline(base: Transport, auth: Optional[AuthContext] = None) -> TransportPipeline:
    return TransportPipeline(base, auth)
