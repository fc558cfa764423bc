import logging
from enum import Enum

from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.validation import validate_profile_fields
from teaserflow.models.teaser_models import PROFILE_FIELDS
from teaserflow.models.teaser_models import CompanyProfile
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.steps import Step
from teaserflow.workflow.steps import StepView

logger = logging.getLogger(__name__)


class ConfirmStatus(str, Enum):
    EDITING = "editing"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    ERROR = "error"


class CompanyConfirm(StepView):
    """Profile review form. Confirming it opens a session on the service."""

    step = Step.COMPANY_CONFIRM

    def __init__(self, store: SessionStore, api: ApiClient) -> None:
        super().__init__(store)
        self._api = api
        # Always start from the persisted profile, never from a previous visit's edits.
        self.draft: CompanyProfile = store.get().profile.model_copy()
        self.status = ConfirmStatus.EDITING
        self.field_errors: dict[str, str] = {}
        self.error = ""

    def edit(self, field: str, value: object) -> None:
        if field not in PROFILE_FIELDS:
            raise ValueError(f"Unknown company field: {field}")
        if value == "":
            value = None
        self.draft = CompanyProfile.model_validate({**self.draft.model_dump(), field: value})
        self.field_errors.pop(field, None)

    async def confirm(self) -> Outcome[str]:
        if self.status is ConfirmStatus.SUBMITTING:
            return Outcome.failure(ErrorKind.BUSY)

        self.field_errors = validate_profile_fields(self.draft.model_dump())
        if self.field_errors:
            first = next(iter(self.field_errors.values()))
            self.error = first
            return Outcome.failure(ErrorKind.VALIDATION, first, self.field_errors)

        self.status = ConfirmStatus.SUBMITTING
        self.error = ""
        submitted = self.draft.model_copy()
        result = await self._api.confirm_company(submitted)

        if self._is_stale("confirm"):
            return Outcome.failure(ErrorKind.CANCELLED)

        if not result.ok:
            self.status = ConfirmStatus.ERROR
            self.error = result.message
            return Outcome.from_result(result)

        if result.data != self._store.get().session_id:
            # A teaser generated under a previous session does not belong to this one.
            self._store.put(profile=submitted, session_id=result.data, last_teaser_id=None, teaser=None)
        else:
            self._store.put(profile=submitted, session_id=result.data)
        self.status = ConfirmStatus.CONFIRMED
        logger.info("Company %r confirmed", submitted.name)
        return Outcome.success(result.data)

    def can_advance(self) -> Outcome[None]:
        if self._store.get().session_id:
            return Outcome.success()
        return Outcome.failure(ErrorKind.MISSING_SESSION, "Confirm the company details before continuing.")
