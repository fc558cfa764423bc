"""Async client for the remote teaser service.

Every public call returns an ``ApiResult``: either ``ok=True`` with parsed
data, or ``ok=False`` with a classified ``ErrorKind`` and a user-facing
message. Raw transport status codes never leave this module.
"""

import logging
from collections.abc import AsyncIterator
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from typing import Generic
from typing import TypeVar
from urllib.parse import quote
from uuid import uuid4

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying
from tenacity import RetryCallState
from tenacity import stop_after_attempt
from tenacity import wait_exponential
from tenacity.wait import wait_base

from teaserflow.core.config import Settings
from teaserflow.core.config import settings as default_settings
from teaserflow.core.exceptions import ApiError
from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.exceptions import NetworkError
from teaserflow.core.exceptions import NotFoundError
from teaserflow.core.exceptions import ParseError
from teaserflow.core.exceptions import ProtocolError
from teaserflow.core.exceptions import RejectedError
from teaserflow.core.exceptions import ServerError
from teaserflow.core.exceptions import UnknownSessionError
from teaserflow.core.exceptions import UnreachableError
from teaserflow.core.exceptions import ValidationError
from teaserflow.core.exceptions import user_message
from teaserflow.models.teaser_models import CandidateFile
from teaserflow.models.teaser_models import CompanyProfile
from teaserflow.models.teaser_models import ExportArtifact
from teaserflow.models.teaser_models import ScrapeResult
from teaserflow.models.teaser_models import TeaserDocument
from teaserflow.models.teaser_models import UploadedFile

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, int, int], None]

PDF_CONTENT_TYPE = "application/pdf"
RETRYABLE_STATUSES = {502, 503, 504}
SESSION_FAILURE_STATUSES = {400, 404, 422}

# Per-call mapping of failure status to error class; anything else is a ServerError.
SCRAPE_STATUS_MAP: dict[int, type[ApiError]] = {422: ValidationError, 400: UnreachableError}
UPLOAD_STATUS_MAP: dict[int, type[ApiError]] = {400: RejectedError}
CONFIRM_STATUS_MAP: dict[int, type[ApiError]] = {422: ValidationError}
TEASER_STATUS_MAP: dict[int, type[ApiError]] = {400: ValidationError, 422: ValidationError}
EXPORT_STATUS_MAP: dict[int, type[ApiError]] = {404: NotFoundError}


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Uniform outcome of a remote call."""

    ok: bool
    data: T | None = None
    error_kind: ErrorKind | None = None
    message: str = ""
    detail: str = ""

    @classmethod
    def success(cls, data: T) -> "ApiResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> "ApiResult[T]":
        return cls(ok=False, error_kind=kind, message=user_message(kind, detail), detail=detail)


class _ProgressStream(httpx.AsyncByteStream):
    """Wraps a request body and reports (percent, loaded, total) per chunk sent."""

    def __init__(self, inner: Any, total: int, on_progress: ProgressCallback | None) -> None:
        self._inner = inner
        self._total = total
        self._on_progress = on_progress

    async def __aiter__(self) -> AsyncIterator[bytes]:
        loaded = 0
        async for chunk in self._inner:
            loaded += len(chunk)
            yield chunk
            # Progress is only computable when the body length is known.
            if self._on_progress is not None and self._total > 0:
                percent = min(100, round(loaded / self._total * 100))
                self._on_progress(percent, loaded, self._total)


def _error_detail(response: httpx.Response) -> str:
    """Extracts a short, human-readable reason from an error response."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text if len(text) < 300 else ""
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list):
            messages = [str(item.get("msg")) for item in detail if isinstance(item, dict) and item.get("msg")]
            return "; ".join(messages)
    return ""


def _as_unknown_session(error: ApiError, *, not_found_means_session: bool = False) -> ApiError:
    """Reclassifies a dependent call's failure when the service says the session is unknown."""
    if error.status_code not in SESSION_FAILURE_STATUSES:
        return error
    if "session" in error.message.lower() or (not_found_means_session and error.status_code == 404):
        return UnknownSessionError(error.message or "Unknown session.", status_code=error.status_code)
    return error


def _should_retry_export(retry_state: RetryCallState) -> bool:
    """Determines if an export fetch should be retried based on the raised error."""
    if not retry_state.outcome:
        return False
    exc = retry_state.outcome.exception()
    if not exc:
        return False
    if isinstance(exc, NetworkError):
        logger.debug("Transport failure during export fetch. Retrying...")
        return True
    if isinstance(exc, ServerError) and exc.status_code in RETRYABLE_STATUSES:
        logger.debug("Retryable export status %s detected. Retrying...", exc.status_code)
        return True
    return False


class ApiClient:
    """Issues requests to the teaser service and normalizes their outcomes."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        export_retry_wait: wait_base | None = None,
    ) -> None:
        self._settings = settings or default_settings
        timeout = httpx.Timeout(self._settings.http_read_timeout, connect=self._settings.http_connect_timeout)
        self._client = httpx.AsyncClient(
            base_url=self._settings.api_base_url,
            timeout=timeout,
            transport=transport,
        )
        self._export_retry_wait = export_retry_wait or wait_exponential(multiplier=1, min=1, max=8)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public calls
    # ------------------------------------------------------------------

    async def scrape_company(self, url: str) -> ApiResult[ScrapeResult]:
        """POST /api/scrape {url} -> {company, found}"""
        return await self._run("scrape", lambda rid: self._scrape(rid, url))

    async def upload_files(
        self,
        files: list[CandidateFile],
        session_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ApiResult[list[UploadedFile]]:
        """POST /api/upload as multipart; on_progress(percent, loaded, total) per chunk sent."""
        return await self._run("upload", lambda rid: self._upload(rid, files, session_id, on_progress))

    async def confirm_company(self, profile: CompanyProfile) -> ApiResult[str]:
        """POST /api/company/confirm {company} -> {session_id}"""
        return await self._run("confirm", lambda rid: self._confirm(rid, profile))

    async def generate_teaser(
        self,
        session_id: str,
        selected_files: list[str] | None = None,
    ) -> ApiResult[TeaserDocument]:
        """POST /api/generate {session_id, selected_files?} -> {teaser, status}"""
        body: dict[str, Any] = {"session_id": session_id}
        if selected_files is not None:
            body["selected_files"] = selected_files
        return await self._run("generate", lambda rid: self._teaser_call(rid, "/api/generate", body, True))

    async def update_teaser(self, teaser_id: str, title: str, content: str) -> ApiResult[TeaserDocument]:
        """POST /api/teaser/{teaser_id}/update {teaser_id, title, content} -> {teaser, status}"""
        path = f"/api/teaser/{quote(teaser_id, safe='')}/update"
        body = {"teaser_id": teaser_id, "title": title, "content": content}
        return await self._run("update", lambda rid: self._teaser_call(rid, path, body))

    async def fetch_export_artifact(self, teaser_id: str) -> ApiResult[ExportArtifact]:
        """GET /api/export/{teaser_id} -> PDF bytes"""
        return await self._run("export", lambda rid: self._fetch_export_with_retry(rid, teaser_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, op_name: str, call: Callable[[str], Awaitable[T]]) -> ApiResult[T]:
        request_id = str(uuid4())
        logger.info("[%s] Calling %s", request_id, op_name)
        try:
            data = await call(request_id)
        except ApiError as e:
            logger.warning(
                "[%s] %s failed: %s (%s, status=%s)",
                request_id,
                op_name,
                e.message,
                e.kind.value,
                e.status_code,
            )
            return ApiResult.failure(e.kind, e.message)
        except Exception as e:
            logger.exception("[%s] Unexpected error during %s", request_id, op_name)
            return ApiResult.failure(ErrorKind.SERVER, str(e))
        logger.info("[%s] %s succeeded", request_id, op_name)
        return ApiResult.success(data)

    async def _send(self, request_id: str, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TransportError as e:
            logger.warning("[%s] Transport error on %s %s: %s", request_id, request.method, request.url.path, e)
            raise NetworkError(f"Network error: {e}") from e

    def _raise_for_status(
        self,
        request_id: str,
        response: httpx.Response,
        status_map: dict[int, type[ApiError]],
    ) -> None:
        if response.is_success:
            return
        detail = _error_detail(response)
        error_cls = status_map.get(response.status_code, ServerError)
        logger.debug("[%s] Response %s classified as %s", request_id, response.status_code, error_cls.__name__)
        raise error_cls(detail, status_code=response.status_code)

    def _json_body(
        self,
        request_id: str,
        response: httpx.Response,
        error_cls: type[ApiError] = ProtocolError,
    ) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            logger.error("[%s] Response body is not valid JSON", request_id)
            raise error_cls("Response body is not valid JSON.") from e
        if not isinstance(body, dict):
            raise error_cls(f"Expected a JSON object, got {type(body).__name__}.")
        return body

    async def _post_json(
        self,
        request_id: str,
        path: str,
        body: dict[str, Any],
        status_map: dict[int, type[ApiError]],
    ) -> dict[str, Any]:
        request = self._client.build_request("POST", path, json=body)
        response = await self._send(request_id, request)
        self._raise_for_status(request_id, response, status_map)
        return self._json_body(request_id, response)

    async def _scrape(self, request_id: str, url: str) -> ScrapeResult:
        body = await self._post_json(request_id, "/api/scrape", {"url": url.strip()}, SCRAPE_STATUS_MAP)
        try:
            result = ScrapeResult.model_validate(
                {"company": body.get("company") or {}, "found": bool(body.get("found"))}
            )
        except PydanticValidationError as e:
            raise ProtocolError(f"Malformed company data: {e.error_count()} invalid field(s).") from e
        logger.debug("[%s] Scrape found=%s name=%r", request_id, result.found, result.company.name)
        return result

    async def _upload(
        self,
        request_id: str,
        files: list[CandidateFile],
        session_id: str | None,
        on_progress: ProgressCallback | None,
    ) -> list[UploadedFile]:
        if not files:
            raise ValidationError("No files provided.")
        params = {"company_id": session_id} if session_id else None
        multipart = [
            ("files", (f.name, f.content, f.content_type or "application/octet-stream")) for f in files
        ]
        built = self._client.build_request("POST", "/api/upload", params=params, files=multipart)
        total = int(built.headers.get("Content-Length", "0") or 0)
        request = httpx.Request(
            built.method,
            built.url,
            headers=built.headers,
            stream=_ProgressStream(built.stream, total, on_progress),
            extensions=built.extensions,
        )
        logger.debug("[%s] Uploading %d file(s), %d bytes", request_id, len(files), total)
        response = await self._send(request_id, request)
        if response.status_code != 200:
            try:
                self._raise_for_status(request_id, response, UPLOAD_STATUS_MAP)
            except ApiError as e:
                session_error = _as_unknown_session(e) if session_id else e
                if session_error is e:
                    raise
                raise session_error from e
            raise ServerError("File upload failed.", status_code=response.status_code)
        body = self._json_body(request_id, response, error_cls=ParseError)
        items = body.get("files")
        if not isinstance(items, list):
            raise ParseError("Upload response is missing the 'files' list.")
        try:
            return [UploadedFile.model_validate(item) for item in items]
        except PydanticValidationError as e:
            raise ParseError("Could not parse upload response.") from e

    async def _confirm(self, request_id: str, profile: CompanyProfile) -> str:
        body = await self._post_json(
            request_id,
            "/api/company/confirm",
            {"company": profile.model_dump(exclude_none=True)},
            CONFIRM_STATUS_MAP,
        )
        session_id = body.get("session_id")
        if session_id is None or not str(session_id).strip():
            raise ProtocolError("Confirmation response did not include a session_id.")
        return str(session_id)

    async def _teaser_call(
        self,
        request_id: str,
        path: str,
        payload: dict[str, Any],
        not_found_means_session: bool = False,
    ) -> TeaserDocument:
        try:
            body = await self._post_json(request_id, path, payload, TEASER_STATUS_MAP)
        except ApiError as e:
            session_error = _as_unknown_session(e, not_found_means_session=not_found_means_session)
            if session_error is e:
                raise
            raise session_error from e
        teaser = body.get("teaser")
        if not isinstance(teaser, dict):
            raise ProtocolError("Response did not include a teaser.")
        data = dict(teaser)
        status = body.get("status") or teaser.get("status")
        if status:
            data["status"] = status
        try:
            return TeaserDocument.model_validate(data)
        except PydanticValidationError as e:
            raise ProtocolError(f"Malformed teaser in response: {e.error_count()} invalid field(s).") from e

    async def _fetch_export_with_retry(self, request_id: str, teaser_id: str) -> ExportArtifact:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.export_fetch_attempts),
            wait=self._export_retry_wait,
            retry=_should_retry_export,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._fetch_export(request_id, teaser_id)
        raise ServerError("Export fetch was not attempted.")  # pragma: no cover

    async def _fetch_export(self, request_id: str, teaser_id: str) -> ExportArtifact:
        path = f"/api/export/{quote(teaser_id, safe='')}"
        request = self._client.build_request("GET", path, headers={"Accept": PDF_CONTENT_TYPE})
        response = await self._send(request_id, request)
        self._raise_for_status(request_id, response, EXPORT_STATUS_MAP)
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type != PDF_CONTENT_TYPE:
            raise ProtocolError(f"Expected {PDF_CONTENT_TYPE}, got '{content_type or 'no content type'}'.")
        logger.debug("[%s] Fetched %d bytes for teaser %s", request_id, len(response.content), teaser_id)
        return ExportArtifact(teaser_id=teaser_id, content=response.content, content_type=content_type)
