#!/usr/bin/env python3
"""
Tests for the email action hook: optimistic state, retries, friendly errors,
retry-last-failed-action and duplicate coalescing.
"""

import asyncio

import httpx

from connectors.backend_client import BackendClient
from error_handler import ErrorKind, KIND_MESSAGES
from features.email_actions import ARCHIVED, MARKED_READ, ConvertToTaskOptions, EmailActions


def scripted(*responses):
    """Handler replaying responses in order (exceptions are raised), repeating the last"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        response = responses[min(len(calls), len(responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, content=response.content, headers=response.headers)

    handler.calls = calls
    return handler


class GatedTransport(httpx.AsyncBaseTransport):
    """Holds every request until release is set"""

    def __init__(self):
        self.release = asyncio.Event()
        self.paths = []

    async def handle_async_request(self, request):
        self.paths.append(request.url.path)
        await self.release.wait()
        return ok_body()


def ok_body(message="Done"):
    return httpx.Response(200, json={"success": True, "action_id": "act-1", "message": message})


def net_down():
    return httpx.ConnectTimeout("network timeout")


async def test_permanent_failure_rolls_back(make_backend, executor):
    """403 on archive: one attempt, Forbidden sentence, override rolled back"""
    handler = scripted(httpx.Response(403, json={"error": "forbidden"}))
    actions = EmailActions(make_backend(handler), executor=executor)

    result = await actions.archive_email("msg-1")

    assert result.success is False
    assert len(handler.calls) == 1
    assert result.message == KIND_MESSAGES[ErrorKind.FORBIDDEN]
    assert actions.error == result.message
    assert actions.optimistic.is_applied("msg-1", ARCHIVED) is False
    assert actions.is_archived("msg-1") is False


async def test_transient_failures_then_success(make_backend, executor, sleep):
    handler = scripted(net_down(), net_down(), ok_body("Archived"))
    actions = EmailActions(make_backend(handler), executor=executor)

    result = await actions.archive_email("msg-1")

    assert result.success is True
    assert len(handler.calls) == 3
    assert sleep.calls == [1.0, 2.0]
    assert actions.error is None
    assert actions.is_archived("msg-1") is True


async def test_error_state_tracks_success(make_backend, executor):
    """success <=> error is None; failure <=> error is the friendly sentence"""
    handler = scripted(httpx.Response(401, json={"error": "Unauthorized"}), ok_body())
    actions = EmailActions(make_backend(handler), executor=executor)

    failed = await actions.mark_as_read("msg-1")
    assert failed.success is False
    assert actions.error == "Your session has expired. Please sign in again."
    assert actions.last_action == failed

    succeeded = await actions.mark_as_read("msg-1")
    assert succeeded.success is True
    assert actions.error is None
    assert actions.last_action == succeeded


async def test_optimistic_state_visible_while_in_flight(executor):
    transport = GatedTransport()
    backend = BackendClient(base_url="http://backend.test", transport=transport)
    actions = EmailActions(backend, executor=executor)

    task = asyncio.ensure_future(actions.archive_email("msg-1"))
    await asyncio.sleep(0.01)
    seen_during = [
        actions.is_archived("msg-1"),
        actions.loading_state("msg-1").archive,
        actions.is_loading,
    ]
    transport.release.set()
    await task
    await backend.close()

    assert seen_during == [True, True, True]
    assert actions.loading_state("msg-1").archive is False
    assert actions.is_loading is False


async def test_retry_last_failed_action(make_backend, executor):
    handler = scripted(httpx.Response(403, json={"error": "forbidden"}), ok_body("Archived"))
    actions = EmailActions(make_backend(handler), executor=executor)

    assert await actions.retry_last_failed_action() is None

    await actions.archive_email("msg-7")
    assert actions.last_failed.current.resource_id == "msg-7"

    retried = await actions.retry_last_failed_action()
    assert retried.success is True
    assert handler.calls[-1].url.path == "/actions/emails/msg-7/archive"
    assert actions.last_failed.current is None
    assert await actions.retry_last_failed_action() is None


async def test_retry_replays_convert_options(make_backend, executor):
    handler = scripted(httpx.Response(404, json={"error": "Email not found"}), ok_body("Task created"))
    actions = EmailActions(make_backend(handler), executor=executor)

    first = await actions.convert_to_task("msg-2", ConvertToTaskOptions(due_date="2026-10-20"))
    assert first.message == "This email could not be found. It may have been deleted."

    await actions.retry_last_failed_action()
    replayed = handler.calls[-1]
    assert replayed.url.path == "/actions/emails/msg-2/to-task"
    assert b"2026-10-20" in replayed.read()


async def test_last_failure_wins(make_backend, executor):
    handler = scripted(httpx.Response(403, json={"error": "forbidden"}))
    actions = EmailActions(make_backend(handler), executor=executor)

    await actions.archive_email("msg-1")
    await actions.mark_as_read("msg-2")

    pending = actions.last_failed.current
    assert (pending.operation_kind, pending.resource_id) == ("mark_read", "msg-2")


async def test_duplicate_requests_are_coalesced(executor):
    transport = GatedTransport()
    backend = BackendClient(base_url="http://backend.test", transport=transport)
    actions = EmailActions(backend, executor=executor)

    first = asyncio.ensure_future(actions.archive_email("msg-1"))
    second = asyncio.ensure_future(actions.archive_email("msg-1"))
    await asyncio.sleep(0.01)
    transport.release.set()
    results = await asyncio.gather(first, second)
    await backend.close()

    assert transport.paths == ["/actions/emails/msg-1/archive"]
    assert results[0] == results[1]


async def test_fields_on_same_email_do_not_clobber(make_backend, executor):
    def handler(request):
        if request.url.path.endswith("/archive"):
            return httpx.Response(403, json={"error": "forbidden"})
        return ok_body()

    actions = EmailActions(make_backend(handler), executor=executor)
    await asyncio.gather(actions.archive_email("msg-1"), actions.mark_as_read("msg-1"))

    assert actions.is_archived("msg-1") is False
    assert actions.is_read("msg-1") is True
    assert actions.optimistic.is_applied("msg-1", MARKED_READ) is True


async def test_unexpected_exception_becomes_unknown_failure(make_backend, executor):
    actions = EmailActions(make_backend(scripted(ok_body())), executor=executor)

    async def broken():
        raise KeyError("bug")

    result = await actions.perform("archive", "msg-1", broken, optimistic_field=ARCHIVED)

    assert result.success is False
    assert result.message == "Failed to archive email. Please try again."
    assert actions.error == result.message
    assert actions.is_archived("msg-1") is False
    assert actions.last_failed.current.error_kind == ErrorKind.UNKNOWN


async def test_backend_rejection_in_body(make_backend, executor):
    handler = scripted(httpx.Response(200, json={"success": False, "message": "Quota exceeded"}))
    actions = EmailActions(make_backend(handler), executor=executor)

    result = await actions.archive_email("msg-1")

    assert result.success is False
    assert len(handler.calls) == 3
    assert result.message == KIND_MESSAGES[ErrorKind.RATE_LIMITED]


async def test_empty_ok_reply_is_not_a_confirmation(make_backend, executor):
    """200 without a result body: failure, override rolled back"""
    handler = scripted(httpx.Response(200))
    actions = EmailActions(make_backend(handler), executor=executor)

    result = await actions.archive_email("msg-1")

    assert result.success is False
    assert len(handler.calls) == 1
    assert result.message == "Failed to archive email. Please try again."
    assert actions.error == result.message
    assert actions.is_archived("msg-1") is False


async def test_clear_helpers(make_backend, executor):
    actions = EmailActions(make_backend(scripted(httpx.Response(403))), executor=executor)
    await actions.archive_email("msg-1")

    actions.clear_error()
    assert actions.error is None
    actions.clear_loading_state("msg-1")
    assert "msg-1" not in actions.loading_states
    actions.clear_state()
    assert actions.last_action is None


def test_convert_options_body():
    options = ConvertToTaskOptions(task_list_id="list-1", additional_notes="call back")
    assert options.to_body() == {'task_list_id': "list-1", 'additional_notes': "call back"}
    assert ConvertToTaskOptions.from_dict(options.to_body()) == options
