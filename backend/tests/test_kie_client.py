"""Tests for KieClient against a mocked HTTP transport."""

import json

import httpx
import pytest

from arcrunner.errors import ProviderPollError, ProviderSubmissionError
from arcrunner.services.builders import ProviderPayload
from arcrunner.services.kie_client import (
    KieClient,
    TaskState,
    parse_jobs_record,
    parse_veo_record,
)


def _client(handler) -> KieClient:
    return KieClient(
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        retry_backoff=0,
    )


def _jobs_payload() -> ProviderPayload:
    return ProviderPayload(api="jobs", family="nano", body={"model": "nano-banana-pro", "input": {"prompt": "x"}})


def _veo_payload() -> ProviderPayload:
    return ProviderPayload(api="veo", family="veo", body={"model": "veo3_fast", "prompt": "x"})


# ---------------------------------------------------------------------------
# Task creation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_task_posts_to_family_route():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 200, "msg": "success", "data": {"taskId": "abc"}})

    async with _client(handler) as kie:
        jobs = await kie.create_task(_jobs_payload())
        veo = await kie.create_task(_veo_payload())

    assert jobs.task_id == "abc"
    assert veo.task_id == "abc"
    assert seen[0].url.path == "/api/v1/jobs/createTask"
    assert seen[1].url.path == "/api/v1/veo/generate"
    assert seen[0].headers["Authorization"] == "Bearer test-key"
    assert json.loads(seen[0].content)["model"] == "nano-banana-pro"


@pytest.mark.asyncio
async def test_create_task_returns_synchronous_result():
    def handler(request):
        return httpx.Response(200, json={"code": 200, "data": {"output": ["https://cdn/img.png"]}})

    async with _client(handler) as kie:
        submission = await kie.create_task(_jobs_payload())

    assert submission.task_id is None
    assert submission.result_url == "https://cdn/img.png"


@pytest.mark.asyncio
async def test_create_task_retries_server_errors():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503, json={"msg": "busy"})
        return httpx.Response(200, json={"code": 200, "data": {"taskId": "late"}})

    async with _client(handler) as kie:
        submission = await kie.create_task(_jobs_payload())

    assert calls["n"] == 3
    assert submission.task_id == "late"


@pytest.mark.asyncio
async def test_create_task_gives_up_after_max_attempts():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(429, json={"msg": "slow down"})

    async with _client(handler) as kie:
        with pytest.raises(ProviderSubmissionError):
            await kie.create_task(_jobs_payload())

    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_create_task_does_not_retry_client_errors():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(200, json={"code": 422, "msg": "prompt rejected"})

    async with _client(handler) as kie:
        with pytest.raises(ProviderSubmissionError, match="prompt rejected"):
            await kie.create_task(_jobs_payload())

    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_create_task_without_id_or_result_fails():
    def handler(request):
        return httpx.Response(200, json={"code": 200, "data": {}})

    async with _client(handler) as kie:
        with pytest.raises(ProviderSubmissionError):
            await kie.create_task(_jobs_payload())


# ---------------------------------------------------------------------------
# Status checks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_jobs_status_success_reads_result_json():
    def handler(request):
        assert request.url.path == "/api/v1/jobs/recordInfo"
        assert request.url.params["taskId"] == "t-1"
        return httpx.Response(200, json={
            "code": 200,
            "data": {"state": "success", "resultJson": json.dumps({"resultUrls": ["https://cdn/out.png"]})},
        })

    async with _client(handler) as kie:
        status = await kie.get_task_status("t-1", "jobs")

    assert status.state == TaskState.SUCCEEDED
    assert status.result_url == "https://cdn/out.png"
    assert status.is_terminal


@pytest.mark.asyncio
async def test_veo_status_uses_veo_route():
    def handler(request):
        assert request.url.path == "/api/v1/veo/record-info"
        return httpx.Response(200, json={
            "code": 200,
            "data": {"successFlag": 1, "response": {"resultUrls": ["https://cdn/v.mp4"]}},
        })

    async with _client(handler) as kie:
        status = await kie.get_task_status("v-1", "veo")

    assert status.state == TaskState.SUCCEEDED
    assert status.result_url == "https://cdn/v.mp4"


@pytest.mark.asyncio
async def test_missing_task_is_terminal_failure():
    def handler(request):
        return httpx.Response(404, json={"msg": "not found"})

    async with _client(handler) as kie:
        status = await kie.get_task_status("gone", "jobs")

    assert status.state == TaskState.FAILED
    assert status.error == "TASK_NOT_FOUND"


@pytest.mark.asyncio
async def test_server_error_is_a_poll_error():
    def handler(request):
        return httpx.Response(502)

    async with _client(handler) as kie:
        with pytest.raises(ProviderPollError):
            await kie.get_task_status("t", "jobs")


@pytest.mark.asyncio
async def test_network_error_is_a_poll_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as kie:
        with pytest.raises(ProviderPollError):
            await kie.get_task_status("t", "veo")


# ---------------------------------------------------------------------------
# Record normalization
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw", ["COMPLETED", "SUCCEEDED", "success"])
def test_success_spellings_share_one_branch(raw):
    status = parse_veo_record({"status": raw, "videoUrl": "https://cdn/v.mp4"})
    assert status.state == TaskState.SUCCEEDED
    assert status.result_url == "https://cdn/v.mp4"


def test_success_without_url_is_failure():
    status = parse_jobs_record({"state": "success", "resultJson": "{}"})
    assert status.state == TaskState.FAILED
    assert status.error == "MISSING_URL"


def test_veo_flags():
    assert parse_veo_record({"successFlag": 0}).state == TaskState.PENDING
    failed = parse_veo_record({"successFlag": 2, "errorMessage": "policy"})
    assert failed.state == TaskState.FAILED
    assert failed.error == "policy"


def test_jobs_failure_keeps_provider_message():
    status = parse_jobs_record({"state": "fail", "failMsg": "content filtered"})
    assert status.state == TaskState.FAILED
    assert status.error == "content filtered"


def test_unknown_and_empty_records_stay_in_flight():
    unknown = parse_jobs_record({"state": "mystery"})
    empty = parse_jobs_record(None)

    assert unknown.state == TaskState.UNKNOWN
    assert not unknown.is_terminal
    assert not unknown.is_empty
    assert empty.is_empty


def test_jobs_result_images_list():
    status = parse_jobs_record({
        "state": "success",
        "resultJson": json.dumps({"images": [{"url": "https://cdn/a.png"}]}),
    })
    assert status.result_url == "https://cdn/a.png"


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upload_file_base64():
    def handler(request):
        assert request.url.host == "kieai.redpandaai.co"
        body = json.loads(request.content)
        assert body["fileName"] == "ref.png"
        assert body["uploadPath"] == "temp_uploads"
        assert body["base64Data"].startswith("data:image/png;base64,")
        return httpx.Response(200, json={"code": 200, "data": {"downloadUrl": "https://files/ref.png"}})

    async with _client(handler) as kie:
        url = await kie.upload_file_base64(b"\x89PNG", "ref.png")

    assert url == "https://files/ref.png"
