"""Base transports.

A transport turns a :class:`requests.Request` into a prepared request and sends
it. The innermost one owns the :class:`requests.Session` (connection pool,
cookie store, redirect following); the pipeline stages wrap it.
"""

from __future__ import annotations

from typing import Any, Optional

import requests


class Transport:
    """Interface shared by the base transport and every pipeline stage."""

    def prepare(self, request: requests.Request) -> requests.PreparedRequest:
        raise NotImplementedError

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SessionTransport(Transport):
    """Sends over a :class:`requests.Session`.

    The session's cookie jar persists and replays cookies the backend sets, and
    ``timeout_s`` is the only timing bound applied to calls.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout_s: float = 30.0,
        allow_redirects: bool = True,
    ):
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.allow_redirects = allow_redirects

    def prepare(self, request: requests.Request) -> requests.PreparedRequest:
        return self.session.prepare_request(request)

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout_s)
        kwargs.setdefault("allow_redirects", self.allow_redirects)
        return self.session.send(prepared, **kwargs)

    def close(self) -> None:
        self.session.close()
