"""URL helpers.

Users configure the inference backend in several shapes:

- nothing at all (local default, http://127.0.0.1:8188)
- a bare host plus a separate port field
- host:port
- a full URL, e.g. https://comfy.example.com behind an access-controlled tunnel

These helpers turn any of them into one absolute base URI and answer the
authority questions the transport pipeline asks.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode, urlparse

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8188

LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


def default_uri() -> str:
    return f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"


def is_loopback(host: str) -> bool:
    host = (host or "").strip("[]").lower()
    return host in LOOPBACK_HOSTS or host.startswith("127.")


def _parse_port(value: Optional[str]) -> Optional[int]:
    value = (value or "").strip()
    if not value.isdigit():
        return None
    port = int(value)
    return port if 0 < port < 65536 else None


def server_uri(host: Optional[str], port: Optional[str] = None) -> str:
    """Resolve configured host/port into an absolute base URI (no trailing slash)."""
    host = (host or "").strip()

    if not host:
        return default_uri()

    if host.lower().startswith(("http://", "https://")):
        u = urlparse(host)
        try:
            u.port  # raises on a malformed port
        except ValueError:
            u = None
        if u is None or not u.hostname:
            logger.warning("Invalid server URL format: %s", host)
            return default_uri()
        return host.rstrip("/")

    # host:port or bare host with the separate port field
    name, sep, maybe_port = host.partition(":")
    port_number = _parse_port(maybe_port) if sep else None
    if port_number is None:
        name = host if not sep else name
        port_number = _parse_port(port)

    if name.lower() == "localhost":
        name = DEFAULT_HOST

    if is_loopback(name):
        return f"http://{name}:{port_number or DEFAULT_PORT}"

    if port_number is not None:
        return f"https://{name}:{port_number}"
    return f"https://{name}"


def authority(uri: Optional[str]) -> str:
    """Return the lowercase host[:port] of a URI, or '' if there is none."""
    if not uri:
        return ""
    return (urlparse(uri).netloc or "").lower()


def hostname(uri: Optional[str]) -> str:
    if not uri:
        return ""
    return (urlparse(uri).hostname or "").lower()


def is_insecure(uri: str) -> bool:
    u = urlparse(uri)
    return u.scheme == "http" and not is_loopback(u.hostname or "")


def warn_if_insecure(uri: str) -> bool:
    """Log a warning for plain HTTP to a non-loopback host. Returns True if warned."""
    if not is_insecure(uri):
        return False
    host = hostname(uri)
    logger.warning(
        "Using HTTP with remote host '%s'. Access-controlled tunnels and most remote "
        "servers require HTTPS. Consider using 'https://%s' instead.",
        host,
        host,
    )
    return True


def websocket_url(base_uri: str, client_id: Optional[str] = None) -> str:
    """Return the streaming endpoint URL (ws/wss mirrors http/https)."""
    u = urlparse(base_uri)
    scheme = "wss" if u.scheme == "https" else "ws"
    path = (u.path or "").rstrip("/") + "/ws"
    url = f"{scheme}://{u.netloc}{path}"
    if client_id:
        url += "?" + urlencode({"clientId": client_id})
    return url
