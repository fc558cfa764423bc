"""Teaser preview and edit step.

The editor keeps two copies of the document: the working copy the user edits
and the last copy the service confirmed. ``dirty`` is simply their
inequality. The confirmed copy is persisted, so re-entering the step reloads
it instead of generating again. Only one mutating call (generate, save or regenerate) may be in
flight at a time; a second one is refused, never queued.
"""

import logging
from enum import Enum

from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.exceptions import user_message
from teaserflow.core.validation import MAX_CONTENT_CHARS
from teaserflow.core.validation import MAX_TITLE_CHARS
from teaserflow.models.teaser_models import TeaserDocument
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.steps import Step
from teaserflow.workflow.steps import StepView

logger = logging.getLogger(__name__)

EDITABLE_LIMITS: dict[str, tuple[str, int]] = {
    "title": ("Title", MAX_TITLE_CHARS),
    "content": ("Content", MAX_CONTENT_CHARS),
}


class EditorState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SAVING = "saving"
    ERROR = "error"


BUSY_STATES = {EditorState.LOADING, EditorState.SAVING}


class TeaserEditor(StepView):
    step = Step.TEASER_PREVIEW

    def __init__(self, store: SessionStore, api: ApiClient) -> None:
        super().__init__(store)
        self._api = api
        self.state = EditorState.IDLE
        self.error = ""
        self.error_kind: ErrorKind | None = None
        self.document: TeaserDocument | None = None
        self.saved: TeaserDocument | None = None
        self._selected_files: list[str] | None = None

    @property
    def dirty(self) -> bool:
        if self.document is None:
            return False
        return not self.document.same_text(self.saved)

    @property
    def busy(self) -> bool:
        return self.state in BUSY_STATES

    async def enter(self) -> None:
        state = self._store.get()
        if not state.session_id:
            self._set_error(ErrorKind.MISSING_SESSION, user_message(ErrorKind.MISSING_SESSION))
            return
        if state.teaser is not None and state.teaser.teaser_id == state.last_teaser_id:
            self.document = state.teaser.model_copy()
            self.saved = state.teaser.model_copy()
            self.state = EditorState.READY
            logger.info("Reloaded saved teaser %s", state.teaser.teaser_id)
            return
        await self.generate()

    async def generate(self, selected_files: list[str] | None = None) -> Outcome[TeaserDocument]:
        if self.busy:
            return Outcome.failure(ErrorKind.BUSY)
        state = self._store.get()
        if not state.session_id:
            return self._set_error(ErrorKind.MISSING_SESSION, user_message(ErrorKind.MISSING_SESSION))

        if selected_files is None and state.uploaded_files:
            selected_files = list(state.uploaded_files)
        self._selected_files = selected_files

        self.state = EditorState.LOADING
        self.error = ""
        self.error_kind = None
        result = await self._api.generate_teaser(state.session_id, selected_files)

        if self._is_stale("generate"):
            return Outcome.failure(ErrorKind.CANCELLED)
        if not result.ok:
            return self._call_failed(result.error_kind, result.message)

        document = result.data
        if document.status == "error":
            return self._set_error(ErrorKind.SERVER, "Teaser generation failed. Please try regenerating.")

        self.document = document.model_copy()
        self.saved = document.model_copy()
        self.state = EditorState.READY
        self._store.put(last_teaser_id=document.teaser_id, teaser=document)
        logger.info("Generated teaser %s (status=%s)", document.teaser_id, document.status)
        return Outcome.success(document)

    def edit(self, field: str, value: str) -> Outcome[TeaserDocument]:
        if field not in EDITABLE_LIMITS:
            raise ValueError(f"Field '{field}' is not editable")
        if self.busy:
            return Outcome.failure(ErrorKind.BUSY)
        if self.document is None:
            return Outcome.failure(ErrorKind.VALIDATION, "There is no teaser to edit yet.")
        label, limit = EDITABLE_LIMITS[field]
        if len(value) > limit:
            message = f"{label} must be at most {limit} characters."
            return Outcome.failure(ErrorKind.VALIDATION, message, {field: message})
        self.document = self.document.model_copy(update={field: value})
        return Outcome.success(self.document)

    async def save(self) -> Outcome[TeaserDocument]:
        if self.busy:
            return Outcome.failure(ErrorKind.BUSY)
        if not self.dirty:
            return Outcome.success(self.saved)

        working = self.document
        self.state = EditorState.SAVING
        self.error = ""
        self.error_kind = None
        result = await self._api.update_teaser(working.teaser_id, working.title, working.content)

        if self._is_stale("save"):
            return Outcome.failure(ErrorKind.CANCELLED)
        if not result.ok:
            # The working copy is kept so the user can retry the save.
            return self._call_failed(result.error_kind, result.message)

        self.saved = result.data.model_copy()
        self.document = result.data.model_copy()
        self.state = EditorState.READY
        self._store.put(last_teaser_id=result.data.teaser_id, teaser=result.data)
        logger.info("Saved teaser %s", result.data.teaser_id)
        return Outcome.success(result.data)

    async def regenerate(self) -> Outcome[TeaserDocument]:
        """Replaces the document with a fresh generation; unsaved edits are dropped."""
        if self.busy:
            return Outcome.failure(ErrorKind.BUSY)
        if self.dirty:
            logger.info("Regenerating teaser; discarding unsaved edits")
        return await self.generate(self._selected_files)

    def can_advance(self) -> Outcome[None]:
        if self.busy:
            return Outcome.failure(ErrorKind.BUSY)
        if self.document is None or self.document.status == "pending":
            return Outcome.failure(ErrorKind.VALIDATION, "Generate the teaser before exporting it.")
        return Outcome.success()

    def _call_failed(self, kind: ErrorKind, message: str) -> Outcome[TeaserDocument]:
        if kind is ErrorKind.MISSING_SESSION:
            logger.warning("Service no longer knows the session; dropping it")
            self._store.put(session_id=None)
        return self._set_error(kind, message)

    def _set_error(self, kind: ErrorKind, message: str) -> Outcome[TeaserDocument]:
        self.state = EditorState.ERROR
        self.error_kind = kind
        self.error = message
        return Outcome.failure(kind, message)
