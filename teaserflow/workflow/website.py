import logging
from enum import Enum

from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.validation import INVALID_URL_MESSAGE
from teaserflow.core.validation import is_valid_company_url
from teaserflow.models.teaser_models import CompanyProfile
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.steps import Step
from teaserflow.workflow.steps import StepView

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Could not extract company details from this website. Please try another URL."

_SCRAPE_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Validation error: make sure the URL is correct.",
    ErrorKind.UNREACHABLE: "URL is invalid or unreachable. Please check the company homepage and try again.",
    ErrorKind.NETWORK: "Network or server error. Please check your connection and try again.",
}


class ScrapeStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class WebsiteInput(StepView):
    """Company website form: validates the URL locally, then scrapes it."""

    step = Step.WEBSITE_INPUT

    def __init__(self, store: SessionStore, api: ApiClient) -> None:
        super().__init__(store)
        self._api = api
        self.url = ""
        self.status = ScrapeStatus.IDLE
        self.error = ""
        self.scraped: CompanyProfile | None = None
        # Bumped whenever the input changes so an older response is recognised as superseded.
        self._request_token = 0

    def set_url(self, url: str) -> None:
        self.url = url
        self.error = ""
        self.scraped = None
        self.status = ScrapeStatus.IDLE
        self._request_token += 1

    async def submit(self, url: str | None = None) -> Outcome[CompanyProfile]:
        if self.status is ScrapeStatus.LOADING:
            return Outcome.failure(ErrorKind.BUSY)
        if url is not None:
            self.set_url(url)

        self.scraped = None
        self.error = ""
        if not is_valid_company_url(self.url):
            return self._fail(ErrorKind.VALIDATION, INVALID_URL_MESSAGE, field_errors={"url": INVALID_URL_MESSAGE})

        self.status = ScrapeStatus.LOADING
        self._request_token += 1
        token = self._request_token
        result = await self._api.scrape_company(self.url.strip())

        if self._is_stale("scrape"):
            return Outcome.failure(ErrorKind.CANCELLED)
        if token != self._request_token:
            logger.debug("Discarding scrape response for superseded URL")
            return Outcome.failure(ErrorKind.CANCELLED)

        if not result.ok:
            return self._fail(result.error_kind, _SCRAPE_MESSAGES.get(result.error_kind, result.message))
        if not result.data.found:
            return self._fail(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        company = result.data.company
        if not company.website:
            company = company.model_copy(update={"website": self.url.strip()})
        # A freshly scraped profile has not been confirmed yet, so any earlier session no longer applies.
        self._store.put(profile=company, session_id=None, last_teaser_id=None, teaser=None)
        self.scraped = company
        self.status = ScrapeStatus.SUCCESS
        logger.info("Scraped company %r from %s", company.name, self.url)
        return Outcome.success(company)

    def can_advance(self) -> Outcome[None]:
        if self.status is ScrapeStatus.SUCCESS and self.scraped is not None:
            return Outcome.success()
        return Outcome.failure(ErrorKind.VALIDATION, "Look up the company website before continuing.")

    def _fail(
        self,
        kind: ErrorKind,
        message: str,
        field_errors: dict[str, str] | None = None,
    ) -> Outcome[CompanyProfile]:
        self.status = ScrapeStatus.ERROR
        self.error = message
        return Outcome.failure(kind, message, field_errors)
