from unittest.mock import Mock, patch

import pytest
import requests

from cloudflare_kv_sync.core.client import (
    CloudflareKVClient,
    KVResponseError,
    KVResult,
)

BASE = (
    "https://api.cloudflare.com/client/v4/accounts/acc123"
    "/storage/kv/namespaces/ns456"
)


def _response(payload=None, status_code=200, text=None):
    response = Mock()
    response.status_code = status_code
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    response.text = text if text is not None else str(payload)
    return response


def test_value_url_construction(mock_config):
    """Keys keep their slashes but other characters are percent-encoded."""
    client = CloudflareKVClient(mock_config)
    assert client.value_url("blog/post 1") == f"{BASE}/values/blog/post%201"


def test_session_has_bearer_token(mock_config):
    client = CloudflareKVClient(mock_config)
    assert client.session.headers["Authorization"] == "Bearer token789"


def test_session_is_reused_per_thread(mock_config):
    client = CloudflareKVClient(mock_config)
    assert client.session is client.session


@patch("cloudflare_kv_sync.core.client.requests.Session.request")
def test_put_success(mock_request, mock_config):
    mock_request.return_value = _response({"success": True, "errors": []})

    client = CloudflareKVClient(mock_config)
    result = client.put("blog/a", "# Hello")

    assert result == KVResult(success=True)
    args, kwargs = mock_request.call_args
    assert args == ("PUT", f"{BASE}/values/blog/a")
    assert kwargs["data"] == b"# Hello"
    assert kwargs["headers"] == {"Content-Type": "text/plain"}
    assert kwargs["timeout"] == 30.0


@patch("cloudflare_kv_sync.core.client.requests.Session.request")
def test_delete_sends_no_content_type(mock_request, mock_config):
    mock_request.return_value = _response({"success": True})

    client = CloudflareKVClient(mock_config)
    result = client.delete("a")

    assert result.success is True
    args, kwargs = mock_request.call_args
    assert args == ("DELETE", f"{BASE}/values/a")
    assert kwargs["data"] is None
    assert kwargs["headers"] == {}


@patch("cloudflare_kv_sync.core.client.requests.Session.request")
def test_api_failure_reports_errors_as_json(mock_request, mock_config):
    mock_request.return_value = _response(
        {
            "success": False,
            "errors": [{"code": 10000, "message": "Authentication error"}],
        },
        status_code=403,
    )

    client = CloudflareKVClient(mock_config)
    result = client.put("a", "body")

    assert result.success is False
    assert result.error == '[{"code": 10000, "message": "Authentication error"}]'


@patch("cloudflare_kv_sync.core.client.requests.Session.request")
def test_non_json_body_raises(mock_request, mock_config):
    mock_request.return_value = _response(
        ValueError("no json"), status_code=502, text="<html>Bad gateway</html>"
    )

    client = CloudflareKVClient(mock_config)
    with pytest.raises(KVResponseError, match="Unexpected response"):
        client.put("a", "body")


@patch("cloudflare_kv_sync.core.client.requests.Session.request")
def test_non_object_body_raises(mock_request, mock_config):
    mock_request.return_value = _response(["not", "an", "object"])

    client = CloudflareKVClient(mock_config)
    with pytest.raises(KVResponseError):
        client.delete("a")


@patch("cloudflare_kv_sync.core.client.requests.Session.request")
def test_network_errors_propagate(mock_request, mock_config):
    mock_request.side_effect = requests.ConnectionError("unreachable")

    client = CloudflareKVClient(mock_config)
    with pytest.raises(requests.ConnectionError):
        client.put("a", "body")
