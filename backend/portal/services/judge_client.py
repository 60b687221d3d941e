"""Judge0 client - submit code, fetch verdicts, normalize responses"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from portal.config import settings
from portal.core.exceptions import JudgeResultError, JudgeSubmitError
from portal.schemas.judge import JudgeResult, JudgeStatus, JudgeToken

logger = logging.getLogger(__name__)

_TOKEN_FIELDS = ("token", "token_id", "submission_token")
_STDOUT_FIELDS = ("stdout", "stdout_text", "stdout_decoded")
_STDERR_FIELDS = ("stderr", "stderr_text", "stderr_decoded")
_TIME_FIELDS = ("time", "cpu_time")
# Judge0 leaves stdin and expected_output out of its default GET field set
_RESULT_FIELDS = "*"


def _first_present(data: Dict[str, Any], fields: tuple) -> Any:
    for field in fields:
        value = data.get(field)
        if value not in (None, ""):
            return value
    return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def extract_token(data: Any) -> Optional[str]:
    """Judge deployments disagree on the token field name"""
    if not isinstance(data, dict):
        return None
    token = _first_present(data, _TOKEN_FIELDS)
    return str(token) if token is not None else None


def normalize_result(data: Any) -> JudgeResult:
    """Fold heterogeneous judge response shapes into one JudgeResult"""
    if not isinstance(data, dict):
        return JudgeResult(raw={"body": data})

    status = data.get("status") or {}
    if isinstance(status, dict):
        status_id = status.get("id") or 0
        description = status.get("description") or ""
    else:
        status_id = data.get("status_id") or 0
        description = str(status)

    time = _first_present(data, _TIME_FIELDS)
    memory = data.get("memory")
    try:
        memory = int(memory) if memory is not None else None
    except (TypeError, ValueError):
        memory = None

    return JudgeResult(
        status=JudgeStatus(id=int(status_id), description=description),
        stdout=_first_present(data, _STDOUT_FIELDS),
        stderr=_first_present(data, _STDERR_FIELDS),
        compile_output=data.get("compile_output") or None,
        message=data.get("message") or None,
        time=str(time) if time is not None else None,
        memory=memory,
        stdin=data.get("stdin"),
        expected_output=data.get("expected_output"),
        raw=data,
    )


class JudgeClient:
    """Thin async wrapper around the Judge0 HTTP API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        key: Optional[str] = None,
        key_header: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        default_time_limit: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.JUDGE0_URL).rstrip("/")
        self.key = settings.JUDGE0_KEY if key is None else key
        self.key_header = key_header or settings.JUDGE0_KEY_HEADER
        self.timeout = timeout_seconds or settings.get_judge_timeout_seconds()
        self.default_time_limit = default_time_limit or settings.JUDGE_DEFAULT_TIME_LIMIT
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.key:
            headers[self.key_header] = self.key
        return headers

    def _client(self) -> httpx.AsyncClient:
        """Connection pool shared by every call until aclose()"""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _post_submission(self, payload: Dict[str, Any]) -> JudgeToken:
        try:
            response = await self._client().post(
                "/submissions",
                params={"base64_encoded": "false", "wait": "false"},
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise JudgeSubmitError(f"Judge submit failed: {exc}") from exc

        if response.is_error:
            body = _response_body(response)
            raise JudgeSubmitError(
                f"Judge submit failed with HTTP {response.status_code}",
                upstream_status=response.status_code,
                body=body,
            )

        data = _response_body(response)
        token = extract_token(data)
        if token is None:
            logger.warning("Judge accepted a submission but returned no token: %s", data)
        return JudgeToken(token=token, raw=data if isinstance(data, dict) else {"body": data})

    async def submit(self, source_code: str, language_id: int, stdin: Optional[str] = None) -> JudgeToken:
        """Queue source for execution and return its token"""
        payload: Dict[str, Any] = {"source_code": source_code, "language_id": language_id}
        if stdin:
            payload["stdin"] = stdin
        return await self._post_submission(payload)

    async def submit_with_test_case(
        self,
        source_code: str,
        language_id: int,
        stdin: str,
        expected_output: str,
        time_limit: Optional[float] = None,
    ) -> JudgeToken:
        """Queue source against one test case; the judge compares stdout itself"""
        cpu_limit = time_limit or self.default_time_limit
        payload = {
            "source_code": source_code,
            "language_id": language_id,
            "stdin": stdin,
            "expected_output": expected_output,
            "cpu_time_limit": cpu_limit,
            "wall_time_limit": cpu_limit * 2,
        }
        return await self._post_submission(payload)

    async def get_result(self, token: str) -> JudgeResult:
        """Fetch the current verdict for a token"""
        try:
            response = await self._client().get(
                f"/submissions/{token}",
                params={"base64_encoded": "false", "fields": _RESULT_FIELDS},
            )
        except httpx.HTTPError as exc:
            raise JudgeResultError(f"Judge get result failed: {exc}") from exc

        if response.is_error:
            raise JudgeResultError(
                f"Judge get result failed with HTTP {response.status_code}",
                upstream_status=response.status_code,
                body=_response_body(response),
            )
        return normalize_result(_response_body(response))


judge_client = JudgeClient()
