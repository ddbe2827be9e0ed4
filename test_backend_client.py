#!/usr/bin/env python3
"""
Tests for the backend client's response normalization.
"""

import httpx

from core.types import ActionResult, ApiResponse


async def test_success_returns_json(make_backend):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen['auth'] = request.headers.get("Authorization")
        seen['path'] = request.url.path
        return httpx.Response(200, json={"plan": {"id": "p1"}})

    backend = make_backend(handler)
    response = await backend.get("/plan/today")

    assert response == ApiResponse(ok=True, status=200, data={"plan": {"id": "p1"}})
    assert seen == {'auth': "Bearer test-token", 'path': "/plan/today"}


async def test_error_body_is_extracted(make_backend):
    backend = make_backend(lambda request: httpx.Response(403, json={"error": "Forbidden"}))
    response = await backend.post("/actions/emails/m1/archive")

    assert response.ok is False
    assert response.status == 403
    assert response.error == "Forbidden"
    assert response.error_message("fallback") == "403: Forbidden"


async def test_error_without_body_uses_reason_phrase(make_backend):
    backend = make_backend(lambda request: httpx.Response(503))
    response = await backend.get("/plan/today")

    assert response.status == 503
    assert response.error == "Service Unavailable"


async def test_transport_failure_is_status_zero(make_backend):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    response = await make_backend(handler).get("/plan/today")

    assert response.ok is False
    assert response.status == 0
    assert response.is_network_failure
    assert "network" in response.error
    assert response.error_message("fallback").startswith("network")


async def test_timeout_is_status_zero(make_backend):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    response = await make_backend(handler).get("/plan/today")
    assert response.status == 0
    assert "timeout" in response.error


async def test_json_body_is_sent(make_backend):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.method, request.read()))
        return httpx.Response(200, json={"success": True})

    backend = make_backend(handler)
    await backend.patch("/actions/tasks/t1", {"title": "New"})

    method, raw = bodies[0]
    assert method == "PATCH"
    assert b'"title"' in raw


def test_action_result_from_response():
    ok = ActionResult.from_response(
        ApiResponse(ok=True, status=200, data={"success": True, "action_id": "a1", "message": "Archived"}),
        "fallback",
    )
    assert ok.success and ok.action_id == "a1" and ok.message == "Archived"

    empty = ActionResult.from_response(ApiResponse(ok=True, status=200), "Failed to archive email")
    assert not empty.success and empty.message == "Failed to archive email"

    failed = ActionResult.from_response(ApiResponse(ok=False, status=404, error="Not found"), "fallback")
    assert not failed.success and failed.message == "404: Not found"

    rejected = ActionResult.from_dict({"success": False})
    assert rejected.message == "Action failed"
