"""Async client for the KIE.ai generation API.

Two route families are in use:

- Veo: ``POST /veo/generate`` and ``GET /veo/record-info?taskId=``
- Jobs (Flux, Nano Banana, Kling): ``POST /jobs/createTask`` and
  ``GET /jobs/recordInfo?taskId=``

Status records come back in three shapes (jobs ``state`` + ``resultJson``,
legacy Veo ``status`` string, and Veo ``successFlag``/``response``).
``parse_jobs_record`` and ``parse_veo_record`` normalize all of them into a
``TaskStatus`` so callers never branch on provider schema.

Usage:
    async with KieClient(api_key="...") as kie:
        submission = await kie.create_task(payload)
        status = await kie.get_task_status(submission.task_id, payload.api)
"""

import base64
import json
import logging
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from arcrunner.errors import KieApiError, ProviderPollError, ProviderSubmissionError
from arcrunner.services.builders import ProviderPayload

logger = logging.getLogger(__name__)

_CREATE_PATHS = {"veo": "/veo/generate", "jobs": "/jobs/createTask"}
_STATUS_PATHS = {"veo": "/veo/record-info", "jobs": "/jobs/recordInfo"}
UPLOAD_PATH = "/api/file-base64-upload"

_SUCCESS_STATES = {"success", "succeeded", "completed", "complete", "done"}
_FAILED_STATES = {"fail", "failed", "error", "cancelled", "canceled", "generate_failed"}
_PENDING_STATES = {"waiting", "queuing", "queued", "pending", "generating", "processing", "running", "submitted"}


class TaskState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class TaskStatus:
    """Normalized provider task status.

    ``raw_state`` is None when the provider returned an empty record.
    """

    state: TaskState
    result_url: Optional[str] = None
    error: Optional[str] = None
    raw_state: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (TaskState.SUCCEEDED, TaskState.FAILED)

    @property
    def is_empty(self) -> bool:
        return self.state == TaskState.UNKNOWN and self.raw_state is None


@dataclass
class TaskSubmission:
    """Result of task creation: a task id (async) or a result URL (sync)."""

    task_id: Optional[str] = None
    result_url: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


def _first_url(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, list):
        for item in value:
            url = _first_url(item if not isinstance(item, dict) else item.get("url"))
            if url:
                return url
    return None


def _classify(raw_state: str) -> TaskState:
    normalized = raw_state.strip().lower()
    if normalized in _SUCCESS_STATES:
        return TaskState.SUCCEEDED
    if normalized in _FAILED_STATES:
        return TaskState.FAILED
    if normalized in _PENDING_STATES:
        return TaskState.PENDING
    return TaskState.UNKNOWN


def _finish(state: TaskState, url: Optional[str], error: Optional[str], raw_state: str) -> TaskStatus:
    if state == TaskState.SUCCEEDED and not url:
        return TaskStatus(TaskState.FAILED, error="MISSING_URL", raw_state=raw_state)
    if state == TaskState.FAILED:
        return TaskStatus(state, error=error or f"Provider reported {raw_state}", raw_state=raw_state)
    return TaskStatus(state, result_url=url if state == TaskState.SUCCEEDED else None, raw_state=raw_state)


def parse_jobs_record(data: Optional[dict]) -> TaskStatus:
    """Normalize a ``/jobs/recordInfo`` data object."""
    if not data:
        return TaskStatus(TaskState.UNKNOWN)
    raw_state = str(data.get("state") or data.get("status") or "")
    if not raw_state:
        return TaskStatus(TaskState.UNKNOWN)

    url = None
    result = data.get("resultJson")
    if isinstance(result, str) and result.strip():
        try:
            result = json.loads(result)
        except json.JSONDecodeError:
            logger.warning(f"Unparseable resultJson: {result[:200]}")
            result = None
    if isinstance(result, dict):
        url = (
            _first_url(result.get("images"))
            or _first_url(result.get("resultUrls"))
            or _first_url(result.get("url"))
        )
    error = data.get("failMsg") or data.get("errorMessage") or data.get("failCode")
    return _finish(_classify(raw_state), url, error, raw_state)


def parse_veo_record(data: Optional[dict]) -> TaskStatus:
    """Normalize a ``/veo/record-info`` data object (either schema)."""
    if not data:
        return TaskStatus(TaskState.UNKNOWN)

    if "successFlag" in data:
        flag = data.get("successFlag")
        raw_state = f"successFlag={flag}"
        response = data.get("response") or {}
        url = None
        if isinstance(response, dict):
            url = (
                _first_url(response.get("resultUrls"))
                or _first_url(response.get("videoUrl"))
                or _first_url(response.get("url"))
                or _first_url(response.get("downloadUrl"))
                or _first_url(response.get("originUrls"))
            )
        error = data.get("errorMessage") or data.get("errorCode")
        if flag == 1:
            state = TaskState.SUCCEEDED
        elif flag in (2, 3):
            state = TaskState.FAILED
        else:
            state = TaskState.PENDING
        return _finish(state, url, error, raw_state)

    raw_state = str(data.get("status") or data.get("state") or "")
    if not raw_state:
        return TaskStatus(TaskState.UNKNOWN)
    url = (
        _first_url(data.get("videoUrl"))
        or _first_url(data.get("url"))
        or _first_url(data.get("images"))
    )
    error = data.get("errorMessage") or data.get("error") or data.get("failMsg")
    return _finish(_classify(raw_state), url, error, raw_state)


def _is_retriable(exc: BaseException) -> bool:
    """Rate limits, server errors and transport failures only."""
    if isinstance(exc, ProviderSubmissionError):
        return False
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, KieApiError) and exc.status_code is not None:
        return exc.status_code == 429 or exc.status_code >= 500
    return False


def _body_code(body: Any) -> Optional[int]:
    if isinstance(body, dict):
        code = body.get("code")
        if isinstance(code, int):
            return code
    return None


class KieClient:
    """Async client for the KIE.ai API (bearer-authenticated)."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.kie.ai/api/v1",
        upload_base_url: str = "https://kieai.redpandaai.co",
        *,
        timeout: float = 15.0,
        status_timeout: float = 10.0,
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.upload_base_url = upload_base_url.rstrip("/")
        self.timeout = timeout
        self.status_timeout = status_timeout
        self.max_attempts = max(max_attempts, 1)
        self.retry_backoff = retry_backoff
        self._api_key = api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                follow_redirects=True,
                timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
                transport=self._transport,
            )
        return self._client

    async def __aenter__(self) -> "KieClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def create_task(self, payload: ProviderPayload) -> TaskSubmission:
        """Submit a generation payload.

        Retries on 429/5xx/transport errors. Raises ProviderSubmissionError
        when the request is rejected or the response carries neither a task
        id nor an immediate result.
        """
        path = _CREATE_PATHS[payload.api]

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=30) + wait_random(0, self.retry_backoff),
            retry=retry_if_exception(_is_retriable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _call() -> dict:
            logger.info(f"POST {path} model={payload.body.get('model')}")
            response = await self.client.post(path, json=payload.body)
            try:
                body = response.json()
            except ValueError:
                body = {"msg": response.text}
            code = _body_code(body)
            status = response.status_code if response.status_code != 200 else (code or 200)
            if status != 200:
                message = body.get("msg") if isinstance(body, dict) else None
                message = message or f"HTTP {status}"
                if status == 429 or status >= 500:
                    raise KieApiError(f"Task creation failed: {message}", status_code=status, body=body)
                raise ProviderSubmissionError(f"Task creation rejected: {message}", status_code=status, body=body)
            return body

        try:
            body = await _call()
        except ProviderSubmissionError:
            raise
        except KieApiError as exc:
            raise ProviderSubmissionError(str(exc), status_code=exc.status_code, body=exc.body) from exc
        except httpx.TransportError as exc:
            raise ProviderSubmissionError(f"Task creation failed: {exc!r}") from exc

        if not isinstance(body, dict):
            body = {}
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        task_id = data.get("taskId") or body.get("taskId") or data.get("jobId") or data.get("task_id")
        result_url = (
            _first_url(data.get("output"))
            or _first_url(data.get("resultUrls"))
            or _first_url(body.get("output"))
        )
        if not task_id and not result_url:
            raise ProviderSubmissionError("Provider returned neither a task id nor a result", body=body)
        logger.info(f"  submitted task_id={task_id} sync_result={bool(result_url)}")
        return TaskSubmission(task_id=str(task_id) if task_id else None, result_url=result_url, raw=body)

    async def get_task_status(self, task_id: str, api: str = "jobs") -> TaskStatus:
        """Fetch and normalize one task's status.

        A 404 is terminal (``TASK_NOT_FOUND``). Timeouts, transport errors
        and 5xx raise ProviderPollError so the caller can retry next tick.
        """
        path = _STATUS_PATHS.get(api, _STATUS_PATHS["jobs"])
        try:
            response = await self.client.get(
                path, params={"taskId": task_id}, timeout=self.status_timeout
            )
        except httpx.TransportError as exc:
            raise ProviderPollError(f"Status check for {task_id} failed: {exc!r}") from exc

        logger.debug(f"GET {path}?taskId={task_id} - HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError:
            body = {}
        status = response.status_code if response.status_code != 200 else (_body_code(body) or 200)

        if status == 404:
            return TaskStatus(TaskState.FAILED, error="TASK_NOT_FOUND", raw_state="404")
        if status != 200:
            raise ProviderPollError(
                f"Status check for {task_id} returned HTTP {status}", status_code=status, body=body
            )

        data = body.get("data") if isinstance(body, dict) else None
        if api == "veo":
            return parse_veo_record(data)
        return parse_jobs_record(data)

    async def upload_file_base64(self, data: bytes, file_name: str) -> str:
        """Upload local media so the provider can fetch it. Returns the public URL."""
        mime = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        encoded = base64.b64encode(data).decode("ascii")
        logger.info(f"Uploading {file_name} ({len(data)} bytes)")
        try:
            response = await self.client.post(
                f"{self.upload_base_url}{UPLOAD_PATH}",
                json={
                    "base64Data": f"data:{mime};base64,{encoded}",
                    "fileName": file_name,
                    "uploadPath": "temp_uploads",
                },
            )
        except httpx.TransportError as exc:
            raise KieApiError(f"Upload of {file_name} failed: {exc!r}") from exc
        if response.status_code != 200:
            raise KieApiError(f"Upload of {file_name} failed: HTTP {response.status_code}", status_code=response.status_code)
        body = response.json()
        payload = body.get("data") or {}
        url = payload.get("downloadUrl") or payload.get("fileUrl") or payload.get("url")
        if not url:
            raise KieApiError(f"Upload of {file_name} returned no URL", body=body)
        return url

    async def download_file(self, url: str) -> bytes:
        """Download a generated result. The API key is not sent to the result host."""
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(120.0, connect=30.0),
            transport=self._transport,
        ) as downloader:
            try:
                response = await downloader.get(url)
            except httpx.TransportError as exc:
                raise KieApiError(f"Download failed: {exc!r}") from exc
        if response.status_code != 200:
            raise KieApiError(f"Download failed: HTTP {response.status_code}", status_code=response.status_code)
        return response.content

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
