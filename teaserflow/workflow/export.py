"""Export step: fetches the rendered teaser PDF, previews it page by page and
saves it locally.

The artifact is fetched afresh on every entry. Downloading only needs the
bytes, so it keeps working when the PDF cannot be paginated for preview.
"""

import asyncio
import io
import logging
from enum import Enum
from pathlib import Path

import pdfplumber

from teaserflow.core.config import Settings
from teaserflow.core.config import settings as default_settings
from teaserflow.core.exceptions import ErrorKind
from teaserflow.models.teaser_models import ExportArtifact
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.steps import Step
from teaserflow.workflow.steps import StepView

logger = logging.getLogger(__name__)

NO_DOCUMENT_MESSAGE = "No teaser to export: generate a document first."
NOT_FOUND_MESSAGE = "Teaser not found. Go back and generate it again."


class ExportState(str, Enum):
    RESOLVING = "resolving"
    FETCHING = "fetching"
    READY = "ready"
    ERROR = "error"


def extract_pages(content: bytes) -> list[str]:
    """Returns the text of every page; raises if the bytes are not a readable PDF."""
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        return [page.extract_text() or "" for page in pdf.pages]


class ExportCoordinator(StepView):
    step = Step.TEASER_EXPORT

    def __init__(self, store: SessionStore, api: ApiClient, settings: Settings | None = None) -> None:
        super().__init__(store)
        self._api = api
        self._settings = settings or default_settings
        self.state = ExportState.RESOLVING
        self.error = ""
        self.error_kind: ErrorKind | None = None
        self.artifact: ExportArtifact | None = None
        self.pages: list[str] = []
        self.page: int | None = None
        self.preview_error = ""

    @property
    def total_pages(self) -> int | None:
        return len(self.pages) if self.pages else None

    @property
    def can_go_back(self) -> bool:
        return True

    async def enter(self) -> None:
        self.state = ExportState.RESOLVING
        self.artifact = None
        self.pages = []
        self.page = None
        self.preview_error = ""

        teaser_id = self._store.get().last_teaser_id
        if not teaser_id:
            self._set_error(ErrorKind.NOT_FOUND, NO_DOCUMENT_MESSAGE)
            return

        self.state = ExportState.FETCHING
        result = await self._api.fetch_export_artifact(teaser_id)
        if self._is_stale("export"):
            return
        if not result.ok:
            if result.error_kind is ErrorKind.NOT_FOUND:
                self._set_error(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)
            else:
                self._set_error(result.error_kind, f"Could not fetch the teaser PDF. {result.message}")
            return

        self.artifact = result.data
        await self._build_preview(result.data)
        if self._is_stale("export preview"):
            return
        self.state = ExportState.READY
        logger.info("Teaser %s ready for export (%s page(s))", teaser_id, self.total_pages or "unknown")

    async def _build_preview(self, artifact: ExportArtifact) -> None:
        try:
            pages = await asyncio.to_thread(extract_pages, artifact.content)
        except Exception as e:
            logger.warning("Could not build preview for teaser %s: %s", artifact.teaser_id, e)
            self.preview_error = "Preview is not available for this document, but it can still be downloaded."
            return
        if not pages:
            self.preview_error = "The document has no pages to preview."
            return
        self.pages = pages
        self.page = 1

    def go_to_page(self, page: int) -> int | None:
        if self.total_pages is None:
            return None
        self.page = max(1, min(page, self.total_pages))
        return self.page

    def next_page(self) -> int | None:
        return self.go_to_page((self.page or 0) + 1)

    def previous_page(self) -> int | None:
        return self.go_to_page((self.page or 2) - 1)

    @property
    def page_text(self) -> str:
        if self.page is None:
            return ""
        return self.pages[self.page - 1]

    def download(self, directory: Path | str | None = None) -> Outcome[Path]:
        if self.artifact is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "There is no teaser PDF to download.")
        target_dir = Path(directory) if directory is not None else self._settings.download_dir
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / self.artifact.filename
            target.write_bytes(self.artifact.content)
        except OSError as e:
            logger.error("Could not save teaser PDF to %s: %s", target_dir, e)
            return Outcome.failure(ErrorKind.SERVER, f"Could not save the PDF: {e.strerror or e}")
        logger.info("Saved teaser PDF to %s", target)
        return Outcome.success(target)

    def can_advance(self) -> Outcome[None]:
        return Outcome.failure(ErrorKind.VALIDATION, "Export is the last step.")

    def _set_error(self, kind: ErrorKind, message: str) -> None:
        self.state = ExportState.ERROR
        self.error_kind = kind
        self.error = message
        self.artifact = None
        self.pages = []
        self.page = None
