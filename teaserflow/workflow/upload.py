"""Upload batch management for supporting documents.

The coordinator keeps an ordered queue of candidate files, filters them
against the allow-list, drops (name, size) duplicates and drives a single
progress-reporting upload at a time.
"""

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from enum import Enum

from teaserflow.core.config import Settings
from teaserflow.core.config import settings as default_settings
from teaserflow.core.exceptions import EmptyBatchError
from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.validation import ALLOWED_EXTENSIONS
from teaserflow.core.validation import is_allowed_file
from teaserflow.models.teaser_models import CandidateFile
from teaserflow.models.teaser_models import RejectedFile
from teaserflow.models.teaser_models import UploadedFile
from teaserflow.models.teaser_models import UploadProgress
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.steps import Step
from teaserflow.workflow.steps import StepView

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class AddFilesResult:
    accepted: list[CandidateFile] = field(default_factory=list)
    rejected: list[RejectedFile] = field(default_factory=list)
    duplicates: list[CandidateFile] = field(default_factory=list)


class UploadCoordinator(StepView):
    """Validates, deduplicates and uploads supporting documents."""

    step = Step.FILE_UPLOAD

    def __init__(self, store: SessionStore, api: ApiClient, settings: Settings | None = None) -> None:
        super().__init__(store)
        self._api = api
        self._settings = settings or default_settings
        self._files: list[CandidateFile] = []
        self._task: asyncio.Task[Outcome[list[UploadedFile]]] | None = None
        self.status = UploadStatus.IDLE
        self.progress: UploadProgress | None = None
        self.results: list[UploadedFile] = []
        self.error = ""

    @property
    def files(self) -> list[CandidateFile]:
        return list(self._files)

    def add_files(self, candidates: list[CandidateFile]) -> AddFilesResult:
        """Queues every acceptable candidate; rejections never block the others."""
        outcome = AddFilesResult()
        queued = {f.key for f in self._files}
        for candidate in candidates:
            if not is_allowed_file(candidate.name, candidate.content_type):
                reason = f"Unsupported file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                outcome.rejected.append(RejectedFile(name=candidate.name, reason=reason))
                logger.info("Rejected %s: unsupported type %r", candidate.name, candidate.content_type)
                continue
            if candidate.size > self._settings.max_file_size_bytes:
                limit_mb = self._settings.max_file_size_bytes // (1024 * 1024)
                outcome.rejected.append(
                    RejectedFile(name=candidate.name, reason=f"File is larger than the {limit_mb}MB limit.")
                )
                logger.info("Rejected %s: %d bytes exceeds limit", candidate.name, candidate.size)
                continue
            if candidate.key in queued:
                outcome.duplicates.append(candidate)
                continue
            if len(self._files) >= self._settings.max_files:
                outcome.rejected.append(
                    RejectedFile(name=candidate.name, reason=f"At most {self._settings.max_files} files can be uploaded.")
                )
                continue
            self._files.append(candidate)
            queued.add(candidate.key)
            outcome.accepted.append(candidate)
        logger.debug(
            "add_files: %d accepted, %d rejected, %d duplicate(s)",
            len(outcome.accepted),
            len(outcome.rejected),
            len(outcome.duplicates),
        )
        return outcome

    def remove_file(self, index: int) -> bool:
        if not 0 <= index < len(self._files):
            return False
        removed = self._files.pop(index)
        logger.debug("Removed %s from upload batch", removed.name)
        return True

    def start_upload(self) -> asyncio.Task[Outcome[list[UploadedFile]]]:
        """Starts the upload as a task so the caller can keep handling input or cancel it."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = self.spawn(self.upload())
        return self._task

    def cancel(self) -> None:
        """Best-effort cancellation; the server may still finish the upload."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("Upload cancelled")

    def close(self) -> None:
        self.cancel()
        super().close()

    async def upload(self) -> Outcome[list[UploadedFile]]:
        if self.status is UploadStatus.UPLOADING:
            return Outcome.failure(ErrorKind.BUSY)
        if not self._files:
            error = EmptyBatchError("No files selected for upload.")
            self.error = error.message
            return Outcome.from_error(error)

        batch = list(self._files)
        self.status = UploadStatus.UPLOADING
        self.progress = None
        self.error = ""
        session_id = self._store.get().session_id
        try:
            result = await self._api.upload_files(batch, session_id=session_id, on_progress=self._on_progress)
        finally:
            if self.status is UploadStatus.UPLOADING:
                self.status = UploadStatus.IDLE

        if self._is_stale("upload"):
            return Outcome.failure(ErrorKind.CANCELLED)

        if not result.ok:
            self.status = UploadStatus.ERROR
            self.error = result.message
            if result.error_kind is ErrorKind.MISSING_SESSION:
                self._store.put(session_id=None)
            logger.warning("Upload of %d file(s) failed; batch kept for retry", len(batch))
            return Outcome.from_result(result)

        uploaded = result.data or []
        self._files = [f for f in self._files if f not in batch]
        self.results = uploaded
        self.status = UploadStatus.SUCCESS
        if self.progress is None or self.progress.percent < 100:
            total = sum(f.size for f in batch)
            self.progress = UploadProgress(percent=100, loaded=total, total=total)

        known = self._store.get().uploaded_files
        names = known + [f.filename for f in uploaded if f.filename not in known]
        self._store.put(uploaded_files=names)
        logger.info("Uploaded %d file(s)", len(uploaded))
        return Outcome.success(uploaded)

    def preview_snippets(self) -> list[tuple[str, str]]:
        limit = self._settings.preview_snippet_chars
        return [(f.filename, f.preview_snippet(limit)) for f in self.results if f.preview_text]

    def _on_progress(self, percent: int, loaded: int, total: int) -> None:
        if self._closed:
            return
        if self.progress is not None and percent < self.progress.percent:
            return
        self.progress = UploadProgress(percent=percent, loaded=loaded, total=total)
