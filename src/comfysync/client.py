"""Inference backend client.

Talks to a ComfyUI-style HTTP API through the transport pipeline:
- handshake (``/system_stats``)
- node option listing (``/object_info/{node}``)
- input image upload (``/upload/image``)
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urljoin

import requests

from .errors import ApiError, Cancelled
from .transport.base import Transport
from .urls import websocket_url

logger = logging.getLogger(__name__)


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise Cancelled()


def _combo_options(definition: Any) -> Optional[List[str]]:
    """Extract options from an input definition.

    Two formats exist:
      old: [["opt1", "opt2", ...], {...}]
      new: ["COMBO", {"options": ["opt1", ...], ...}]
    """
    if not isinstance(definition, (list, tuple)) or not definition:
        return None
    options = definition[0]
    if isinstance(options, str) and options == "COMBO":
        if len(definition) > 1 and isinstance(definition[1], dict):
            options = definition[1].get("options", [])
        else:
            return None
    if not isinstance(options, list):
        return None
    return [str(o) for o in options]


class InferenceClient:
    """Client for one inference backend.

    All requests go through ``transport`` (normally a
    :class:`~comfysync.transport.TransportPipeline`).
    """

    def __init__(self, base_uri: str, transport: Transport):
        self.base_uri = base_uri.rstrip("/")
        self.transport = transport
        self.client_id = uuid.uuid4().hex
        self.system_stats: Dict[str, Any] = {}

    def _url(self, path: str) -> str:
        """Build full URL for API endpoint."""
        return urljoin(self.base_uri + "/", path.lstrip("/"))

    def _request(
        self,
        method: str,
        path: str,
        cancel: Optional[threading.Event] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Make an API request; raise ApiError for HTTP error statuses."""
        check_cancelled(cancel)

        prepared = self.transport.prepare(requests.Request(method, self._url(path), **kwargs))
        response = self.transport.send(prepared)

        check_cancelled(cancel)

        if response.status_code >= 400:
            raise ApiError.from_response(response)
        return response

    def _request_json(
        self,
        method: str,
        path: str,
        cancel: Optional[threading.Event] = None,
        **kwargs: Any,
    ) -> Any:
        response = self._request(method, path, cancel=cancel, **kwargs)
        try:
            return response.json()
        except ValueError:
            raise ApiError.from_response(
                response, f"{method} {response.url}: response is not valid JSON"
            )

    # --- Handshake ---

    def get_system_stats(self, cancel: Optional[threading.Event] = None) -> Dict[str, Any]:
        """Liveness probe used once per connect."""
        data = self._request_json("GET", "/system_stats", cancel=cancel)
        if not isinstance(data, dict):
            raise ApiError(
                "Unexpected /system_stats payload",
                method="GET",
                uri=self._url("/system_stats"),
                status_code=200,
                reason="Unexpected payload",
            )
        self.system_stats = data
        return data

    # --- Option listing ---

    def get_object_info(
        self,
        node_type: str,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the node's definition, or None if the backend has no such node."""
        path = f"/object_info/{quote(node_type)}"
        try:
            data = self._request_json("GET", path, cancel=cancel)
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise

        if not isinstance(data, dict) or node_type not in data:
            return None
        info = data[node_type]
        return info if isinstance(info, dict) else None

    def get_node_option_names(
        self,
        node_type: str,
        param_name: str,
        required: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> List[str]:
        """List the options a node accepts for one of its inputs.

        With ``required=False`` a node the backend does not have (e.g. an
        extension that is not installed) yields an empty list.
        """
        info = self.get_object_info(node_type, cancel=cancel)
        uri = self._url(f"/object_info/{node_type}")

        if info is None:
            if not required:
                logger.debug("Optional node %s not available on backend", node_type)
                return []
            raise ApiError(
                f"Node {node_type} not found",
                method="GET",
                uri=uri,
                status_code=404,
                reason=f"Node {node_type} not found",
            )

        inputs = info.get("input", {})
        if isinstance(inputs, dict):
            for section in ("required", "optional"):
                params = inputs.get(section) or {}
                if isinstance(params, dict) and param_name in params:
                    options = _combo_options(params[param_name])
                    if options is not None:
                        return options

        raise ApiError(
            f"Node {node_type} has no option list for {param_name}",
            method="GET",
            uri=uri,
            status_code=200,
            reason=f"Missing option list {node_type}.{param_name}",
        )

    # --- Upload ---

    def upload_image(
        self,
        data: bytes,
        filename: str,
        overwrite: bool = True,
        subfolder: str = "",
        image_type: str = "input",
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Upload an input image; return the name the backend assigned."""
        form = {"overwrite": "true" if overwrite else "false", "type": image_type}
        if subfolder:
            form["subfolder"] = subfolder

        result = self._request_json(
            "POST",
            "/upload/image",
            cancel=cancel,
            files={"image": (filename, data, "application/octet-stream")},
            data=form,
        )
        if isinstance(result, dict) and result.get("name"):
            name = str(result["name"])
            if result.get("subfolder"):
                name = f"{result['subfolder']}/{name}"
            return name
        return filename

    # --- Streaming handshake ---

    def websocket_url(self) -> str:
        return websocket_url(self.base_uri, self.client_id)

    def websocket_headers(self) -> Dict[str, str]:
        """Auth headers for the streaming handshake, filtered like every request."""
        upgrade_headers = getattr(self.transport, "upgrade_headers", None)
        return upgrade_headers() if upgrade_headers is not None else {}

    def close(self) -> None:
        self.transport.close()
