"""Tests for the inference client."""

import threading

import pytest

from comfysync.client import InferenceClient, _combo_options
from comfysync.config import AuthContext
from comfysync.errors import ApiError, Cancelled
from comfysync.transport import build_pipeline

from fakes import FakeTransport, make_response, object_info

BASE = "http://127.0.0.1:8188"


def make_client(routes):
    base = FakeTransport(routes)
    return InferenceClient(BASE, build_pipeline(base)), base


class TestComboOptions:
    """Tests for option extraction from node input definitions."""

    def test_old_format(self):
        """Test the [[options], {...}] format."""
        assert _combo_options([["euler", "heun"], {}]) == ["euler", "heun"]

    def test_new_format(self):
        """Test the ["COMBO", {"options": [...]}] format."""
        assert _combo_options(["COMBO", {"options": ["a", "b"], "default": "a"}]) == ["a", "b"]

    def test_not_a_combo(self):
        """Test that non-combo inputs yield None."""
        assert _combo_options(["INT", {"default": 20}]) is None
        assert _combo_options("MODEL") is None
        assert _combo_options([]) is None


class TestHandshake:
    """Tests for get_system_stats."""

    def test_success(self):
        """Test a healthy handshake."""
        stats = {"system": {"os": "posix", "comfyui_version": "0.3.10"}, "devices": []}
        client, base = make_client({"/system_stats": (200, stats)})

        assert client.get_system_stats() == stats
        assert client.system_stats == stats
        assert base.paths() == ["/system_stats"]

    def test_http_error(self):
        """Test that an error status raises ApiError."""
        client, _ = make_client({"/system_stats": (502, "Bad gateway")})
        with pytest.raises(ApiError) as exc:
            client.get_system_stats()
        assert exc.value.status_code == 502
        assert exc.value.method == "GET"
        assert exc.value.uri.endswith("/system_stats")

    def test_html_body(self):
        """Test that an HTML page raises ApiError carrying the body."""
        client, _ = make_client({"/system_stats": (200, "<html>error</html>")})
        with pytest.raises(ApiError) as exc:
            client.get_system_stats()
        assert exc.value.content.startswith("<html>")

    def test_cancelled_before_send(self):
        """Test that a set cancellation signal stops the call before sending."""
        client, base = make_client({"/system_stats": (200, {})})
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(Cancelled):
            client.get_system_stats(cancel=cancel)
        assert base.sent == []


class TestNodeOptions:
    """Tests for get_node_option_names."""

    def test_required_inputs(self):
        """Test options listed under required inputs."""
        routes = {
            "/object_info/KSampler": (200, object_info("KSampler", "sampler_name", ["euler", "dpmpp_2m"])),
        }
        client, _ = make_client(routes)
        assert client.get_node_option_names("KSampler", "sampler_name") == ["euler", "dpmpp_2m"]

    def test_optional_inputs(self):
        """Test options listed under optional inputs."""
        routes = {
            "/object_info/Loader": (200, object_info("Loader", "model", ["m.pt"], section="optional")),
        }
        client, _ = make_client(routes)
        assert client.get_node_option_names("Loader", "model") == ["m.pt"]

    def test_optional_node_absent(self):
        """Test that an absent optional node yields an empty list."""
        client, _ = make_client({})
        assert client.get_node_option_names("SAMLoader", "model_name", required=False) == []

    def test_optional_node_empty_object(self):
        """Test that an empty object for an optional node yields an empty list."""
        client, _ = make_client({"/object_info/SAMLoader": (200, {})})
        assert client.get_node_option_names("SAMLoader", "model_name", required=False) == []

    def test_required_node_absent(self):
        """Test that an absent required node raises."""
        client, _ = make_client({})
        with pytest.raises(ApiError) as exc:
            client.get_node_option_names("CheckpointLoaderSimple", "ckpt_name")
        assert exc.value.status_code == 404

    def test_missing_param(self):
        """Test that a node without the requested input raises."""
        routes = {"/object_info/KSampler": (200, object_info("KSampler", "seed", ["x"]))}
        client, _ = make_client(routes)
        with pytest.raises(ApiError):
            client.get_node_option_names("KSampler", "sampler_name")

    def test_server_error_not_downgraded(self):
        """Test that a 500 on an optional node is still an error."""
        client, _ = make_client({"/object_info/SAMLoader": (500, "boom")})
        with pytest.raises(ApiError) as exc:
            client.get_node_option_names("SAMLoader", "model_name", required=False)
        assert exc.value.status_code == 500


class TestUpload:
    """Tests for upload_image."""

    def test_upload(self):
        """Test multipart upload and the returned name."""
        captured = {}

        def handler(prepared):
            captured["body"] = prepared.body
            captured["content_type"] = prepared.headers["Content-Type"]
            return make_response(
                prepared.url, 200, {"name": "img.png", "subfolder": "", "type": "input"}, request=prepared
            )

        client, base = make_client({"/upload/image": handler})
        name = client.upload_image(b"\x89PNGdata", "img.png")

        assert name == "img.png"
        assert base.sent[0].method == "POST"
        assert captured["content_type"].startswith("multipart/form-data")
        assert b'name="image"; filename="img.png"' in captured["body"]
        assert b'name="overwrite"' in captured["body"]

    def test_upload_with_subfolder(self):
        """Test that a subfolder is prefixed to the returned name."""
        def handler(prepared):
            return make_response(prepared.url, 200, {"name": "a.png", "subfolder": "Inference"}, request=prepared)

        client, _ = make_client({"/upload/image": handler})
        assert client.upload_image(b"x", "a.png", subfolder="Inference") == "Inference/a.png"


class TestClientMisc:
    """Tests for helpers."""

    def test_websocket_url(self):
        """Test the streaming endpoint mirrors the base URI."""
        client, _ = make_client({})
        url = client.websocket_url()
        assert url.startswith("ws://127.0.0.1:8188/ws?clientId=")
        assert client.client_id in url

    def test_websocket_headers(self):
        """Test the streaming handshake carries the configured auth headers."""
        base = FakeTransport()
        auth = AuthContext(headers={"CF-Access-Client-Id": "x", "": "y"})
        client = InferenceClient(BASE, build_pipeline(base, auth))
        assert client.websocket_headers() == {"CF-Access-Client-Id": "x"}

    def test_websocket_headers_plain_transport(self):
        """Test a transport without header injection yields no headers."""
        assert InferenceClient(BASE, FakeTransport()).websocket_headers() == {}

    def test_close(self):
        """Test that close reaches the base transport."""
        client, base = make_client({})
        client.close()
        assert base.closed is True
