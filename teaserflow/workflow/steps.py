"""Workflow steps and the lifecycle shared by every step view."""

import asyncio
import logging
from abc import ABC
from collections.abc import Coroutine
from enum import Enum
from enum import IntEnum
from typing import Any
from typing import ClassVar

from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.outcome import Outcome

logger = logging.getLogger(__name__)


class Step(IntEnum):
    LANDING = 0
    WEBSITE_INPUT = 1
    FILE_UPLOAD = 2
    COMPANY_CONFIRM = 3
    TEASER_PREVIEW = 4
    TEASER_EXPORT = 5

    @property
    def label(self) -> str:
        return STEP_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self is Step.TEASER_EXPORT


STEP_LABELS: dict[Step, str] = {
    Step.LANDING: "Welcome",
    Step.WEBSITE_INPUT: "Company Website",
    Step.FILE_UPLOAD: "File Upload",
    Step.COMPANY_CONFIRM: "Confirm/Edit Company",
    Step.TEASER_PREVIEW: "Teaser Preview/Edit",
    Step.TEASER_EXPORT: "Export",
}


class StepState(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    UPCOMING = "upcoming"


def step_states(current: Step) -> list[tuple[Step, str, StepState]]:
    """One (step, label, state) triple per step, for a progress indicator."""
    states = []
    for step in Step:
        if step < current:
            state = StepState.COMPLETED
        elif step == current:
            state = StepState.CURRENT
        else:
            state = StepState.UPCOMING
        states.append((step, step.label, state))
    return states


class StepView(ABC):
    """Local state of one step for the duration of a single visit.

    A view is built fresh on every entry (re-hydrated from the session store)
    and closed when the user navigates away. Once closed, responses that are
    still in flight must be discarded instead of being applied.
    """

    step: ClassVar[Step]

    def __init__(self, store: SessionStore) -> None:
        self._store = store
        self._closed = False
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    async def enter(self) -> None:
        """Runs once after the view becomes current. Default: nothing to load."""

    def can_advance(self) -> Outcome[None]:
        return Outcome.success()

    def close(self) -> None:
        """Marks the view as gone and cancels its tasks; safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        logger.debug("Closed view for step %s", self.step.label)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_stale(self, operation: str) -> bool:
        if self._closed:
            logger.debug("Discarding %s response: step %s is no longer active", operation, self.step.label)
            return True
        return False


class LandingView(StepView):
    step = Step.LANDING
