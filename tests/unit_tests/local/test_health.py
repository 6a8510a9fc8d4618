from unittest.mock import MagicMock, patch

import requests

from thakii_ops.local.health import (
    check_cors,
    detects_vite,
    looks_like_html,
    test_backend as run_backend_tests,
    test_frontend as run_frontend_tests,
    validate_backend,
    validate_http_endpoint,
    wait_for_service,
)

BASE_URL = "http://backend.test:5001"


def _response(status=200, text="", headers=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = text
    response.headers = headers or {}
    return response


def _router(routes):
    """Build a requests.request side effect keyed by (method, url)."""
    def request(method, url, **kwargs):
        result = routes.get((method, url))
        if result is None:
            raise requests.exceptions.ConnectionError(url)
        return result
    return request


def test_validate_http_endpoint_health_content(capsys):
    routes = {("GET", f"{BASE_URL}/health"): _response(200, '{"status": "healthy"}')}
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert validate_http_endpoint(f"{BASE_URL}/health", 200, "Backend Health") is True

    output = capsys.readouterr().out
    assert "Health check content validation passed" in output


def test_validate_http_endpoint_unhealthy_body_only_warns(capsys):
    routes = {("GET", f"{BASE_URL}/health"): _response(200, '{"status": "starting"}')}
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert validate_http_endpoint(f"{BASE_URL}/health", 200, "Backend Health") is True

    assert "content validation failed" in capsys.readouterr().out


def test_validate_http_endpoint_wrong_status():
    routes = {("GET", f"{BASE_URL}/list"): _response(200, "[]")}
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert validate_http_endpoint(f"{BASE_URL}/list", 401, "Auth") is False


def test_validate_http_endpoint_connection_error():
    with patch("thakii_ops.local.health.requests.request", side_effect=_router({})):
        assert validate_http_endpoint(f"{BASE_URL}/health", 200, "Backend Health") is False


def test_check_cors():
    routes = {("HEAD", f"{BASE_URL}/health"): _response(200, headers={"Access-Control-Allow-Origin": "*"})}
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert check_cors(f"{BASE_URL}/health", "http://localhost:3000") is True

    with patch("thakii_ops.local.health.requests.request", side_effect=_router({})):
        assert check_cors(f"{BASE_URL}/health", "http://localhost:3000") is None


def test_validate_backend_tolerates_missing_auth(capsys):
    routes = {
        ("GET", f"{BASE_URL}/health"): _response(200, '{"status":"healthy"}'),
        ("HEAD", f"{BASE_URL}/health"): _response(200),
        ("GET", f"{BASE_URL}/list"): _response(200, "[]"),
    }
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert validate_backend(BASE_URL, "http://localhost:3000") is True

    output = capsys.readouterr().out
    assert "CORS headers not found" in output
    assert "Authentication test inconclusive" in output


def test_backend_suite_requires_authentication():
    auth = '{"error": "Authentication required"}'
    routes = {
        ("GET", f"{BASE_URL}/health"): _response(200, '{"status":"healthy"}'),
        ("GET", f"{BASE_URL}/list"): _response(401, auth),
        ("POST", f"{BASE_URL}/upload"): _response(401, auth),
    }
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert run_backend_tests(BASE_URL) is True

    routes[("POST", f"{BASE_URL}/upload")] = _response(200, "uploaded")
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert run_backend_tests(BASE_URL) is False


def test_frontend_suite():
    routes = {("GET", "http://localhost:3000"): _response(200, "<!doctype html><div id=root>")}
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert run_frontend_tests("http://localhost:3000") is True

    routes = {("GET", "http://localhost:3000"): _response(200, "plain text")}
    with patch("thakii_ops.local.health.requests.request", side_effect=_router(routes)):
        assert run_frontend_tests("http://localhost:3000") is False


def test_wait_for_service_against_real_server(http_server):
    _, port = http_server
    assert wait_for_service(f"http://127.0.0.1:{port}/", "Test Server", max_attempts=3, interval=0.1) is True


def test_wait_for_service_gives_up(free_port):
    assert wait_for_service(f"http://127.0.0.1:{free_port}/", "Ghost", max_attempts=2, interval=0.05) is False


def test_html_helpers():
    assert looks_like_html("<!DOCTYPE html><html>")
    assert looks_like_html("<html lang='en'>")
    assert not looks_like_html('{"status": "healthy"}')
    assert detects_vite('<script type="module" src="/@vite/client">')
    assert not detects_vite("<html></html>")
