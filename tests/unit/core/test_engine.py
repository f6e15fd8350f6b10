from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING
from unittest.mock import Mock

import httpx
import pytest
from coola.equality import objects_are_equal

import aresky
from aresky import (
    STOP,
    AbortController,
    AbortError,
    HTTPError,
    NonError,
    RequestTimeoutError,
    ResponseEnvelope,
    retry,
)
from aresky.core.engine import RequestEngine
from aresky.core.engine import create as create_promise
from aresky.hooks import BeforeErrorState
from aresky.promise import ResponsePromise
from tests.helpers import URL, RecordingHandler, make_fetch, sequence

if TYPE_CHECKING:
    from aresky import HttpxFetch


###################################
#     Tests for RequestEngine     #
###################################


def test_engine_builds_request_immediately(echo_fetch: HttpxFetch) -> None:
    engine = RequestEngine(URL, {"fetch": echo_fetch, "method": "post", "json": {"a": 1}})
    assert engine.request.method == "POST"
    assert engine.request.headers["content-type"] == "application/json"
    assert engine.options.fetch is echo_fetch
    assert engine.retry_count == 0


def test_engine_invalid_options() -> None:
    with pytest.raises(TypeError, match=r"The `options` argument must be a mapping"):
        RequestEngine(URL, ["timeout"])


def test_engine_prefix_with_leading_slash(echo_handler: RecordingHandler, echo_fetch: HttpxFetch) -> None:
    with pytest.raises(ValueError, match=r"must not begin with a slash"):
        RequestEngine("/users", {"fetch": echo_fetch, "prefix_url": URL})
    assert echo_handler.call_count == 0


def test_create_returns_promise(echo_fetch: HttpxFetch) -> None:
    promise = create_promise(URL, {"fetch": echo_fetch})
    assert isinstance(promise, ResponsePromise)
    assert isinstance(promise.engine, RequestEngine)


@pytest.mark.asyncio
async def test_run_success(echo_handler: RecordingHandler, echo_fetch: HttpxFetch) -> None:
    response = await RequestEngine(URL, {"fetch": echo_fetch}).run()
    assert isinstance(response, ResponseEnvelope)
    assert response.status_code == 200
    assert (await response.json())["method"] == "GET"
    assert echo_handler.call_count == 1


@pytest.mark.asyncio
async def test_run_json_round_trip(echo_fetch: HttpxFetch) -> None:
    data = await aresky.request(URL, fetch=echo_fetch, method="post", json={"name": "ada", "tags": [1, 2]}).json()
    assert data["method"] == "POST"
    assert objects_are_equal(data["json"], {"name": "ada", "tags": [1, 2]})
    assert data["headers"]["content-type"] == "application/json"
    assert data["headers"]["accept"] == "application/json"


@pytest.mark.asyncio
async def test_run_stringify_and_parse_json(echo_fetch: HttpxFetch) -> None:
    data = await aresky.request(
        URL,
        fetch=echo_fetch,
        method="post",
        json={"a": 1},
        stringify_json=lambda value: json.dumps({"wrapped": value}),
        parse_json=lambda text: {"parsed": json.loads(text)["json"]},
    ).json()
    assert data == {"parsed": {"wrapped": {"a": 1}}}


@pytest.mark.asyncio
async def test_run_repeated_json(echo_fetch: HttpxFetch) -> None:
    promise = aresky.request(URL, fetch=echo_fetch)
    first = await promise.json()
    second = await promise.json()
    assert objects_are_equal(first, second)


@pytest.mark.asyncio
async def test_run_search_params_and_prefix(echo_fetch: HttpxFetch) -> None:
    data = await aresky.request(
        "users", fetch=echo_fetch, prefix_url=URL, search_params={"page": 2, "q": "a b"}
    ).json()
    assert data["url"] == f"{URL}/users?page=2&q=a+b"


@pytest.mark.asyncio
async def test_run_no_content() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(204))
    assert await aresky.request(URL, fetch=fetch).json() == ""


@pytest.mark.asyncio
async def test_run_empty_body() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(200, content=b""))
    assert await aresky.request(URL, fetch=fetch).json() == ""


@pytest.mark.asyncio
async def test_run_invalid_json() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(200, text="not json"))
    with pytest.raises(json.JSONDecodeError):
        await aresky.request(URL, fetch=fetch).json()


@pytest.mark.asyncio
async def test_run_shortcut_keeps_caller_accept(echo_fetch: HttpxFetch) -> None:
    data = await aresky.request(URL, fetch=echo_fetch, headers={"accept": "text/csv"}).json()
    assert data["headers"]["accept"] == "text/csv"


@pytest.mark.asyncio
async def test_run_unknown_options_reach_transport() -> None:
    fetch = Mock(return_value=None)

    async def transport(request: httpx.Request, **init: object) -> httpx.Response:
        fetch(request, **init)
        return httpx.Response(200, request=request)

    await aresky.request(URL, fetch=transport, follow_redirects=True)
    assert fetch.call_args.kwargs == {"follow_redirects": True}


################################
#     Tests for the retries    #
################################


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 1, 3])
async def test_run_retry_limit(mock_asleep: Mock, limit: int) -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(500))
    with pytest.raises(HTTPError, match=r"500 Internal Server Error"):
        await aresky.request(URL, fetch=fetch, retry=limit)
    assert handler.call_count == limit + 1
    assert mock_asleep.call_count == limit


@pytest.mark.asyncio
async def test_run_retry_408(mock_asleep: Mock) -> None:  # noqa: ARG001
    fetch, handler = make_fetch(lambda request: httpx.Response(408))
    with pytest.raises(HTTPError, match=r"Request Timeout") as exc:
        await aresky.request(URL, fetch=fetch, retry=3)
    assert handler.call_count == 4
    assert exc.value.status_code == 408


@pytest.mark.asyncio
async def test_run_retry_then_success(mock_asleep: Mock) -> None:
    fetch, handler = make_fetch(
        sequence(httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"ok": True}))
    )
    assert await aresky.request(URL, fetch=fetch).json() == {"ok": True}
    assert handler.call_count == 3
    assert [call.args[0] for call in mock_asleep.call_args_list] == [0.3, 0.6]


@pytest.mark.asyncio
async def test_run_retry_413_with_retry_after(mock_asleep: Mock) -> None:
    fetch, handler = make_fetch(
        sequence(httpx.Response(413, headers={"Retry-After": "2"}), httpx.Response(200))
    )
    response = await aresky.request(URL, fetch=fetch)
    assert response.status_code == 200
    assert handler.call_count == 2
    mock_asleep.assert_called_once_with(2.0)


@pytest.mark.asyncio
async def test_run_retry_413_without_retry_after(mock_asleep: Mock) -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(413))
    with pytest.raises(HTTPError):
        await aresky.request(URL, fetch=fetch)
    assert handler.call_count == 1
    mock_asleep.assert_not_called()


@pytest.mark.asyncio
async def test_run_post_not_retried(mock_asleep: Mock) -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(503))
    with pytest.raises(HTTPError):
        await aresky.request(URL, fetch=fetch, method="post", json={"a": 1})
    assert handler.call_count == 1
    mock_asleep.assert_not_called()


@pytest.mark.asyncio
async def test_run_post_retried_when_allowed(mock_asleep: Mock) -> None:  # noqa: ARG001
    fetch, handler = make_fetch(sequence(httpx.Response(503), httpx.Response(200)))
    response = await aresky.request(URL, fetch=fetch, method="post", json={"a": 1}, retry={"methods": ["post"]})
    assert response.status_code == 200
    assert handler.call_count == 2
    assert [request.content for request in handler.requests] == [b'{"a": 1}', b'{"a": 1}']


@pytest.mark.asyncio
async def test_run_network_error_retried(mock_asleep: Mock) -> None:  # noqa: ARG001
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    fetch, recorder = make_fetch(handler)
    with pytest.raises(httpx.ConnectError):
        await aresky.request(URL, fetch=fetch, retry=1)
    assert recorder.call_count == 2


@pytest.mark.asyncio
async def test_run_before_retry_stop(mock_asleep: Mock) -> None:  # noqa: ARG001
    fetch, handler = make_fetch(lambda request: httpx.Response(500))
    response = await aresky.request(URL, fetch=fetch, hooks={"before_retry": [lambda state: STOP]})
    assert response is None
    assert handler.call_count == 1


@pytest.mark.asyncio
async def test_run_before_retry_stop_shortcut(mock_asleep: Mock) -> None:  # noqa: ARG001
    fetch, _ = make_fetch(lambda request: httpx.Response(500))
    assert await aresky.request(URL, fetch=fetch, hooks={"before_retry": [lambda state: STOP]}).json() is None


@pytest.mark.asyncio
async def test_run_forced_retry(mock_asleep: Mock) -> None:
    counts = []

    def after_response(request, options, response, state):  # noqa: ARG001
        counts.append(state.retry_count)
        if state.retry_count == 0:
            return retry(delay=10, code="REFRESH")
        return None

    fetch, handler = make_fetch(lambda request: httpx.Response(200))
    response = await aresky.request(URL, fetch=fetch, hooks={"after_response": [after_response]})
    assert response.status_code == 200
    assert handler.call_count == 2
    assert counts == [0, 1]
    mock_asleep.assert_called_once_with(0.01)


@pytest.mark.asyncio
async def test_run_forced_retry_with_request(mock_asleep: Mock) -> None:  # noqa: ARG001
    def after_response(request, options, response, state):  # noqa: ARG001
        if state.retry_count == 0:
            return retry(delay=0, request=httpx.Request("GET", f"{URL}/fresh"))
        return None

    fetch, handler = make_fetch(lambda request: httpx.Response(200))
    await aresky.request(URL, fetch=fetch, hooks={"after_response": [after_response]})
    assert [str(request.url) for request in handler.requests] == [URL, f"{URL}/fresh"]


@pytest.mark.asyncio
async def test_run_forced_retry_limit(mock_asleep: Mock) -> None:  # noqa: ARG001
    fetch, handler = make_fetch(lambda request: httpx.Response(200))
    hooks = {"after_response": [lambda request, options, response, state: retry(delay=0)]}
    with pytest.raises(Exception, match=r"Forced retry"):
        await aresky.request(URL, fetch=fetch, retry=2, hooks=hooks)
    assert handler.call_count == 3


#################################
#     Tests for the timeout     #
#################################


@pytest.mark.asyncio
async def test_run_timeout() -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(200), delay=1.0)
    start = time.monotonic()
    with pytest.raises(RequestTimeoutError, match=r"Request timed out"):
        await aresky.request(URL, fetch=fetch, timeout=500)
    elapsed = time.monotonic() - start
    assert 0.49 <= elapsed < 0.9
    assert handler.call_count == 1


@pytest.mark.asyncio
async def test_run_timeout_retried(mock_asleep: Mock) -> None:  # noqa: ARG001
    attempts = []

    async def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            await asyncio.Event().wait()
        return httpx.Response(200)

    fetch, _ = make_fetch(handler)
    response = await aresky.request(URL, fetch=fetch, timeout=50, retry={"retry_on_timeout": True})
    assert response.status_code == 200
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_run_timeout_disabled() -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(200), delay=0.05)
    response = await aresky.request(URL, fetch=fetch, timeout=False)
    assert response.status_code == 200
    assert handler.call_count == 1


###############################
#     Tests for the hooks     #
###############################


@pytest.mark.asyncio
async def test_run_before_request_modifies_request(echo_fetch: HttpxFetch) -> None:
    def add_token(request, options, state):  # noqa: ARG001
        request.headers["authorization"] = "Bearer token"

    data = await aresky.request(URL, fetch=echo_fetch, hooks={"before_request": [add_token]}).json()
    assert data["headers"]["authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_run_before_request_response(echo_handler: RecordingHandler, echo_fetch: HttpxFetch) -> None:
    hooks = {"before_request": [lambda request, options, state: httpx.Response(200, json={"cached": True})]}
    assert await aresky.request(URL, fetch=echo_fetch, hooks=hooks).json() == {"cached": True}
    assert echo_handler.call_count == 0


@pytest.mark.asyncio
async def test_run_before_request_context(echo_fetch: HttpxFetch) -> None:
    def add_token(request, options, state):  # noqa: ARG001
        request.headers["authorization"] = options.context["token"]

    data = await aresky.request(
        URL, fetch=echo_fetch, context={"token": "secret"}, hooks={"before_request": [add_token]}
    ).json()
    assert data["headers"]["authorization"] == "secret"


@pytest.mark.asyncio
async def test_run_after_response_replaces_response(echo_fetch: HttpxFetch) -> None:
    hooks = {"after_response": [lambda request, options, response, state: httpx.Response(200, json=[1])]}
    assert await aresky.request(URL, fetch=echo_fetch, hooks=hooks).json() == [1]


@pytest.mark.asyncio
async def test_run_after_response_reads_body(echo_fetch: HttpxFetch) -> None:
    seen = []

    async def after_response(request, options, response, state):  # noqa: ARG001
        seen.append((await response.json())["method"])

    data = await aresky.request(URL, fetch=echo_fetch, hooks={"after_response": [after_response]}).json()
    assert seen == ["GET"]
    assert data["method"] == "GET"


@pytest.mark.asyncio
async def test_run_after_response_can_fix_status() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(500))
    hooks = {"after_response": [lambda request, options, response, state: httpx.Response(200, text="ok")]}
    assert await aresky.request(URL, fetch=fetch, hooks=hooks).text() == "ok"


@pytest.mark.asyncio
async def test_run_before_error_replaces_error() -> None:
    class CustomError(Exception):
        pass

    received = []

    def before_error(error, state):
        received.append((error, state))
        return CustomError(f"wrapped: {error.status_code}")

    fetch, _ = make_fetch(lambda request: httpx.Response(404))
    with pytest.raises(CustomError, match=r"wrapped: 404") as exc_info:
        await aresky.request(URL, fetch=fetch, hooks={"before_error": [before_error]})
    assert exc_info.value.__cause__ is received[0][0]
    assert isinstance(received[0][0], HTTPError)
    assert received[0][1] == BeforeErrorState(retry_count=0)


@pytest.mark.asyncio
async def test_run_before_error_keeps_error() -> None:
    hook = Mock(return_value=None)
    fetch, _ = make_fetch(lambda request: httpx.Response(404))
    with pytest.raises(HTTPError):
        await aresky.request(URL, fetch=fetch, hooks={"before_error": [hook]})
    hook.assert_called_once()


@pytest.mark.asyncio
async def test_run_before_error_non_error_value() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(404))
    with pytest.raises(NonError, match=r"not found"):
        await aresky.request(URL, fetch=fetch, hooks={"before_error": [lambda error, state: "not found"]})


@pytest.mark.asyncio
async def test_run_before_error_retry_count(mock_asleep: Mock) -> None:  # noqa: ARG001
    hook = Mock(return_value=None)
    fetch, _ = make_fetch(lambda request: httpx.Response(503))
    with pytest.raises(HTTPError):
        await aresky.request(URL, fetch=fetch, retry=2, hooks={"before_error": [hook]})
    assert hook.call_args.args[1] == BeforeErrorState(retry_count=2)


@pytest.mark.asyncio
async def test_run_before_error_not_called_for_hook_errors(echo_fetch: HttpxFetch) -> None:
    hook = Mock(return_value=None)

    def failing(request, options, state):  # noqa: ARG001
        msg = "hook failed"
        raise RuntimeError(msg)

    with pytest.raises(RuntimeError, match=r"hook failed"):
        await aresky.request(URL, fetch=echo_fetch, hooks={"before_request": [failing], "before_error": [hook]})
    hook.assert_not_called()


###########################################
#     Tests for throw_http_errors         #
###########################################


@pytest.mark.asyncio
async def test_run_throw_http_errors_false() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(404, text="missing"))
    response = await aresky.request(URL, fetch=fetch, throw_http_errors=False)
    assert response.status_code == 404
    assert await response.text() == "missing"


@pytest.mark.asyncio
async def test_run_throw_http_errors_predicate() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(404))
    response = await aresky.request(URL, fetch=fetch, throw_http_errors=lambda status: status >= 500)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_run_throw_http_errors_predicate_raises(mock_asleep: Mock) -> None:  # noqa: ARG001
    fetch, _ = make_fetch(lambda request: httpx.Response(500))
    with pytest.raises(HTTPError):
        await aresky.request(URL, fetch=fetch, retry=0, throw_http_errors=lambda status: status >= 500)


@pytest.mark.asyncio
async def test_run_http_error_body_readable() -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(400, json={"detail": "bad"}))
    with pytest.raises(HTTPError) as exc:
        await aresky.request(URL, fetch=fetch)
    assert exc.value.response.json() == {"detail": "bad"}
    assert exc.value.request.method == "GET"
    assert exc.value.options.method == "GET"


##################################
#     Tests for cancellation     #
##################################


@pytest.mark.asyncio
async def test_run_aborted_before_start(abort_controller: AbortController) -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(200))
    abort_controller.abort()
    with pytest.raises(AbortError):
        await aresky.request(URL, fetch=fetch, signal=abort_controller.signal)
    assert handler.call_count == 0


@pytest.mark.asyncio
async def test_run_aborted_while_pending(abort_controller: AbortController) -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(200), delay=1.0)
    asyncio.get_running_loop().call_later(0.05, abort_controller.abort, "cancelled by user")
    with pytest.raises(AbortError, match=r"cancelled by user"):
        await aresky.request(URL, fetch=fetch, signal=abort_controller.signal)
    assert handler.call_count == 1


@pytest.mark.asyncio
async def test_run_aborted_during_retry_delay(abort_controller: AbortController) -> None:
    fetch, handler = make_fetch(lambda request: httpx.Response(503))
    asyncio.get_running_loop().call_later(0.05, abort_controller.abort)
    with pytest.raises(AbortError):
        await aresky.request(URL, fetch=fetch, signal=abort_controller.signal, retry={"delay": lambda n: 10_000})
    assert handler.call_count == 1


@pytest.mark.asyncio
async def test_run_signal_listener_removed(abort_controller: AbortController) -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(200))
    await aresky.request(URL, fetch=fetch, signal=abort_controller.signal)
    assert abort_controller.signal._listeners == []


@pytest.mark.asyncio
async def test_run_signal_listener_removed_after_retries(
    abort_controller: AbortController, mock_asleep: Mock  # noqa: ARG001
) -> None:
    fetch, handler = make_fetch(sequence(httpx.Response(503), httpx.Response(503), httpx.Response(200)))
    await aresky.request(URL, fetch=fetch, retry=2, signal=abort_controller.signal)
    assert handler.call_count == 3
    assert abort_controller.signal._listeners == []


@pytest.mark.asyncio
async def test_run_signal_listener_removed_after_error(abort_controller: AbortController) -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(404))
    with pytest.raises(HTTPError):
        await aresky.request(URL, fetch=fetch, signal=abort_controller.signal)
    assert abort_controller.signal._listeners == []


@pytest.mark.asyncio
async def test_run_combined_signal_listeners_removed() -> None:
    instance_controller, shared_controller = AbortController(), AbortController()
    fetch, handler = make_fetch(lambda request: httpx.Response(200))
    api = aresky.create(fetch=fetch, signal=instance_controller.signal)
    for _ in range(20):
        await api.get(URL, signal=shared_controller.signal)
        await api.get(URL, signal=AbortController().signal)
    assert handler.call_count == 40
    assert instance_controller.signal._listeners == []
    assert shared_controller.signal._listeners == []


######################################
#     Tests for progress reporting   #
######################################


@pytest.mark.asyncio
async def test_run_download_progress(mock_callback: Mock) -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(200, content=b"x" * 100))
    assert await aresky.request(URL, fetch=fetch, on_download_progress=mock_callback).bytes() == b"x" * 100
    progress, chunk = mock_callback.call_args_list[-1].args
    assert progress.percent == 1.0
    assert progress.transferred_bytes == 100
    assert chunk == b"x" * 100


@pytest.mark.asyncio
async def test_run_download_progress_no_content(mock_callback: Mock) -> None:
    fetch, _ = make_fetch(lambda request: httpx.Response(204))
    assert await aresky.request(URL, fetch=fetch, on_download_progress=mock_callback).text() == ""
    assert mock_callback.call_count == 1
    assert mock_callback.call_args.args[0].percent == 1.0


@pytest.mark.asyncio
async def test_run_upload_progress(mock_callback: Mock, echo_fetch: HttpxFetch) -> None:
    data = await aresky.request(
        URL, fetch=echo_fetch, method="post", body=b"payload", on_upload_progress=mock_callback
    ).json()
    assert data["body"] == "payload"
    progress, chunk = mock_callback.call_args_list[-1].args
    assert progress.percent == 1.0
    assert progress.total_bytes == 7
    assert chunk == b"payload"
