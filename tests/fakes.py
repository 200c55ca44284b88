"""In-process fakes for HTTP tests.

``FakeTransport`` is a base transport that answers from a route table with
real :class:`requests.Response` objects, so the pipeline stages and the client
run unmodified.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

import requests
from requests.structures import CaseInsensitiveDict

from comfysync.transport import Transport

LOGIN_URL = "https://myteam.cloudflareaccess.com/cdn-cgi/access/login/comfy.example.com"
LOGIN_HTML = (
    "<!DOCTYPE html><html><head><title>Sign in - Cloudflare Access</title></head>"
    "<body>Get a login code emailed to you. cloudflareaccess.com</body></html>"
)

REASONS = {200: "OK", 302: "Found", 404: "Not Found", 500: "Internal Server Error", 502: "Bad Gateway"}


def make_response(
    url: str,
    status: int = 200,
    body: Any = "",
    headers: Optional[Dict[str, str]] = None,
    request: Optional[requests.PreparedRequest] = None,
    history: Optional[List[requests.Response]] = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = REASONS.get(status, "")
    response.url = url
    if isinstance(body, (dict, list)):
        body = json.dumps(body)
        headers = {"Content-Type": "application/json", **(headers or {})}
    response._content = body.encode("utf-8") if isinstance(body, str) else body
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict(headers or {})
    response.request = request
    response.history = history or []
    return response


def login_redirect(prepared: requests.PreparedRequest, login_url: str = LOGIN_URL) -> requests.Response:
    """The request bounced through a 302 and ended on the login page."""
    hop = make_response(prepared.url, 302, "", {"Location": login_url}, request=prepared)
    final_request = prepared.copy()
    final_request.url = login_url
    return make_response(login_url, 200, LOGIN_HTML, {"Content-Type": "text/html"}, final_request, [hop])


def object_info(node_type: str, param_name: str, options: List[str], section: str = "required") -> dict:
    return {node_type: {"input": {section: {param_name: [options, {}]}}}}


Route = Union[Callable[[requests.PreparedRequest], requests.Response], BaseException, tuple]


class FakeTransport(Transport):
    """Base transport answering from ``routes`` keyed by URL path.

    A route is a callable taking the prepared request, an exception to raise,
    or a ``(status, body)`` tuple. Unknown paths answer 404.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.session = requests.Session()
        self.routes: Dict[str, Route] = dict(routes or {})
        self.sent: List[requests.PreparedRequest] = []
        self.send_kwargs: List[dict] = []
        self.closed = False

    def prepare(self, request: requests.Request) -> requests.PreparedRequest:
        return self.session.prepare_request(request)

    def send(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        self.sent.append(prepared)
        self.send_kwargs.append(kwargs)
        route = self.routes.get(urlparse(prepared.url).path)

        if route is None:
            return make_response(prepared.url, 404, "404: Not Found", request=prepared)
        if isinstance(route, BaseException):
            raise route
        if callable(route):
            return route(prepared)
        status, body = route
        return make_response(prepared.url, status, body, request=prepared)

    def paths(self) -> List[str]:
        return [urlparse(p.url).path for p in self.sent]

    def close(self) -> None:
        self.closed = True
