import asyncio
import contextlib
import logging
from typing import Any

from teaserflow.core.config import Settings
from teaserflow.core.config import settings as default_settings
from teaserflow.core.exceptions import ErrorKind
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.confirm import CompanyConfirm
from teaserflow.workflow.editor import TeaserEditor
from teaserflow.workflow.export import ExportCoordinator
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.steps import LandingView
from teaserflow.workflow.steps import Step
from teaserflow.workflow.steps import StepState
from teaserflow.workflow.steps import StepView
from teaserflow.workflow.steps import step_states
from teaserflow.workflow.upload import UploadCoordinator
from teaserflow.workflow.website import WebsiteInput

logger = logging.getLogger(__name__)


class WorkflowController:
    """Sequences the workflow steps and owns the lifecycle of the current step view.

    Every entry into a step builds a fresh view from the session store and
    starts its ``enter()`` coroutine as a task; leaving the step closes the
    view, so late responses are dropped instead of written back.
    """

    def __init__(self, store: SessionStore, api: ApiClient, settings: Settings | None = None) -> None:
        self._store = store
        self._api = api
        self._settings = settings or default_settings
        self._step = Step.LANDING
        self._view: StepView = LandingView(store)
        self._entry_task: asyncio.Task[Any] | None = None

    @property
    def step(self) -> Step:
        return self._step

    @property
    def view(self) -> StepView:
        return self._view

    async def forward(self) -> Outcome[Step]:
        if self._step.is_terminal:
            return Outcome.failure(ErrorKind.VALIDATION, f"'{self._step.label}' is the last step.")
        check = self._view.can_advance()
        if not check.ok:
            logger.info("Forward transition from %s denied: %s", self._step.label, check.message)
            return Outcome.failure(check.error_kind or ErrorKind.VALIDATION, check.message)
        self._enter(Step(self._step + 1))
        return Outcome.success(self._step)

    async def back(self) -> Outcome[Step]:
        if self._step is Step.LANDING:
            return Outcome.success(self._step)
        self._enter(Step(self._step - 1))
        return Outcome.success(self._step)

    async def restart(self) -> Outcome[Step]:
        """Clears the persisted session and starts over from the landing step."""
        self._store.clear()
        self._enter(Step.LANDING)
        return Outcome.success(self._step)

    async def wait_for_entry(self) -> None:
        """Waits until the current view has finished loading on entry."""
        task = self._entry_task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def progress(self) -> list[tuple[Step, str, StepState]]:
        return step_states(self._step)

    async def aclose(self) -> None:
        self._leave()
        await self.wait_for_entry()

    def _build_view(self, step: Step) -> StepView:
        if step is Step.WEBSITE_INPUT:
            return WebsiteInput(self._store, self._api)
        if step is Step.FILE_UPLOAD:
            return UploadCoordinator(self._store, self._api, self._settings)
        if step is Step.COMPANY_CONFIRM:
            return CompanyConfirm(self._store, self._api)
        if step is Step.TEASER_PREVIEW:
            return TeaserEditor(self._store, self._api)
        if step is Step.TEASER_EXPORT:
            return ExportCoordinator(self._store, self._api, self._settings)
        return LandingView(self._store)

    def _leave(self) -> None:
        self._view.close()
        if self._entry_task is not None and not self._entry_task.done():
            self._entry_task.cancel()

    def _enter(self, step: Step) -> None:
        previous = self._step
        self._leave()
        self._step = step
        self._view = self._build_view(step)
        self._entry_task = self._view.spawn(self._view.enter())
        logger.info("Step %s -> %s", previous.label, step.label)
