import json

import httpx
import pytest

from portal.core.exceptions import JudgeResultError, JudgeSubmitError
from portal.schemas.judge import JudgeStatus
from portal.services.judge_client import JudgeClient, extract_token, normalize_result


def _client(handler, **kwargs) -> JudgeClient:
    kwargs.setdefault("key", "secret-key")
    return JudgeClient(
        base_url="https://judge.test/",
        key_header="X-Auth-Token",
        timeout_seconds=2,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_submit_posts_source_with_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("X-Auth-Token")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"token": "abc-123"})

    result = await _client(handler).submit("print(1)", 71, stdin="5")

    assert result.token == "abc-123"
    assert seen["method"] == "POST"
    assert seen["path"] == "/submissions"
    assert seen["params"] == {"base64_encoded": "false", "wait": "false"}
    assert seen["auth"] == "secret-key"
    assert seen["body"] == {"source_code": "print(1)", "language_id": 71, "stdin": "5"}


@pytest.mark.asyncio
async def test_submit_without_key_sends_no_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("X-Auth-Token")
        return httpx.Response(201, json={"token": "t"})

    await _client(handler, key="").submit("print(1)", 71)
    assert seen["auth"] is None


@pytest.mark.asyncio
async def test_submit_with_test_case_derives_wall_time_limit():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"token": "t"})

    client = _client(handler, default_time_limit=2)
    await client.submit_with_test_case("src", 54, "1 2", "3", 1.5)
    await client.submit_with_test_case("src", 54, "1 2", "3")

    assert bodies[0]["stdin"] == "1 2"
    assert bodies[0]["expected_output"] == "3"
    assert bodies[0]["cpu_time_limit"] == 1.5
    assert bodies[0]["wall_time_limit"] == 3.0
    assert bodies[1]["cpu_time_limit"] == 2
    assert bodies[1]["wall_time_limit"] == 4


@pytest.mark.asyncio
async def test_submit_accepts_alternate_token_field_and_missing_token():
    responses = iter([{"token_id": "alt-1"}, {"submission_token": "alt-2"}, {"message": "queued"}])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=next(responses))

    client = _client(handler)
    assert (await client.submit("a", 1)).token == "alt-1"
    assert (await client.submit("a", 1)).token == "alt-2"
    assert (await client.submit("a", 1)).token is None


@pytest.mark.asyncio
async def test_submit_non_2xx_raises_with_upstream_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"language_id": ["language not found"]})

    with pytest.raises(JudgeSubmitError) as excinfo:
        await _client(handler).submit("a", 999)

    assert excinfo.value.upstream_status == 422
    assert excinfo.value.body == {"language_id": ["language not found"]}
    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_submit_transport_failure_raises_submit_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(JudgeSubmitError):
        await _client(handler).submit("a", 1)


@pytest.mark.asyncio
async def test_get_result_normalizes_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={
            "status": {"id": 3, "description": "Accepted"},
            "stdout_text": "2\n",
            "stderr": None,
            "cpu_time": "0.004",
            "memory": "3200",
        })

    result = await _client(handler).get_result("tok-9")

    assert seen["path"] == "/submissions/tok-9"
    assert seen["params"] == {"base64_encoded": "false", "fields": "*"}
    assert result.status.id == 3
    assert result.status.is_accepted
    assert result.stdout == "2\n"
    assert result.stderr is None
    assert result.time == "0.004"
    assert result.memory == 3200
    assert result.raw["cpu_time"] == "0.004"


@pytest.mark.asyncio
async def test_get_result_server_error_raises_result_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream overloaded")

    with pytest.raises(JudgeResultError) as excinfo:
        await _client(handler).get_result("tok")
    assert excinfo.value.upstream_status == 503
    assert excinfo.value.body == "upstream overloaded"


@pytest.mark.asyncio
async def test_get_result_timeout_raises_result_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(JudgeResultError):
        await _client(handler).get_result("tok")


def test_extract_token_handles_non_dict():
    assert extract_token(["not", "a", "dict"]) is None
    assert extract_token({"token": ""}) is None


def test_normalize_result_tolerates_missing_status():
    result = normalize_result({"stdout": "x"})
    assert result.status.id == 0
    assert result.stdout == "x"


@pytest.mark.parametrize(
    "status_id, finished, accepted, compile_error, runtime_error",
    [
        (1, False, False, False, False),
        (2, False, False, False, False),
        (3, True, True, False, False),
        (4, True, False, False, False),
        (5, True, False, False, True),
        (6, True, False, True, False),
        (11, True, False, False, True),
    ],
)
def test_status_classification(status_id, finished, accepted, compile_error, runtime_error):
    status = JudgeStatus(id=status_id)
    assert status.is_finished is finished
    assert status.is_accepted is accepted
    assert status.is_compilation_error is compile_error
    assert status.is_runtime_error is runtime_error


@pytest.mark.asyncio
async def test_get_result_asks_for_stdin_and_expected_output():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["fields"] = request.url.params.get("fields")
        return httpx.Response(200, json={
            "status": {"id": 4, "description": "Wrong Answer"},
            "stdout": "0",
            "stdin": "1\n1",
            "expected_output": "2",
        })

    result = await _client(handler).get_result("tok-1")

    assert seen["fields"] == "*"
    assert result.stdin == "1\n1"
    assert result.expected_output == "2"


@pytest.mark.asyncio
async def test_calls_share_one_connection_pool_until_closed():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"token": "t"})
        return httpx.Response(200, json={"status": {"id": 3}})

    client = _client(handler)
    await client.submit("a", 1)
    pool = client._http
    await client.get_result("t")

    assert pool is not None
    assert client._http is pool

    await client.aclose()
    assert pool.is_closed
    assert client._http is None

    await client.get_result("t")
    assert client._http is not pool
    await client.aclose()
