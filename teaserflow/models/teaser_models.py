import mimetypes
import re
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

PROFILE_FIELDS: tuple[str, ...] = (
    "name",
    "industry",
    "headquarters",
    "description",
    "website",
    "email",
    "phone",
    "founded_year",
    "employees",
    "revenue",
    "logo_url",
)


class CompanyProfile(BaseModel):
    """Company details scraped from a website and edited during confirmation."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    name: str | None = None
    industry: str | None = None
    headquarters: str | None = None
    description: str | None = None
    website: str | None = None
    email: str | None = None
    phone: str | None = None
    founded_year: int | str | None = None
    employees: int | str | None = None
    revenue: float | int | str | None = None
    logo_url: str | None = None


class ScrapeResult(BaseModel):
    """Payload of a successful scrape call."""

    company: CompanyProfile = Field(default_factory=CompanyProfile)
    found: bool = False


class CandidateFile(BaseModel):
    """A file picked by the user, not yet uploaded."""

    name: str
    size: int
    content_type: str | None = None
    content: bytes = b""

    @classmethod
    def from_path(cls, path: Path | str) -> "CandidateFile":
        path = Path(path)
        content = path.read_bytes()
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, size=len(content), content_type=content_type, content=content)

    @classmethod
    def from_bytes(cls, name: str, content: bytes, content_type: str | None = None) -> "CandidateFile":
        return cls(name=name, size=len(content), content_type=content_type, content=content)

    @property
    def key(self) -> tuple[str, int]:
        return (self.name, self.size)


class RejectedFile(BaseModel):
    """A candidate left out of the batch, with the reason shown to the user."""

    name: str
    reason: str


class UploadedFile(BaseModel):
    """Per-file result returned by the upload endpoint."""

    model_config = ConfigDict(extra="ignore")

    filename: str
    size: int | None = None
    content_type: str | None = None
    preview_text: str | None = None

    def preview_snippet(self, limit: int = 300) -> str:
        """Preview text truncated for display; the stored text is left whole."""
        text = self.preview_text or ""
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + "…"


class UploadProgress(BaseModel):
    """Fraction of an upload body sent so far."""

    percent: int
    loaded: int
    total: int


TeaserStatus = Literal["pending", "success", "error"]


class TeaserDocument(BaseModel):
    """Generated teaser text as returned by the generate and update calls."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    teaser_id: str = Field(validation_alias=AliasChoices("teaser_id", "id"))
    title: str = ""
    content: str = ""
    status: TeaserStatus = "success"

    def same_text(self, other: "TeaserDocument | None") -> bool:
        return other is not None and self.title == other.title and self.content == other.content


class ExportArtifact(BaseModel):
    """Rendered teaser PDF held by the export view."""

    teaser_id: str
    content: bytes
    content_type: str = "application/pdf"

    @property
    def filename(self) -> str:
        # The id comes from the service; keep it from acting as a path.
        safe_id = _UNSAFE_FILENAME_CHARS.sub("_", self.teaser_id).strip(".") or "document"
        return f"teaser_{safe_id}.pdf"


class SessionState(BaseModel):
    """Snapshot of everything persisted across workflow steps."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    profile: CompanyProfile = Field(default_factory=CompanyProfile, alias="companyProfile")
    session_id: str | None = None
    last_teaser_id: str | None = None
    uploaded_files: list[str] = Field(default_factory=list)
    # Last copy of the teaser the service confirmed, reloaded when the editor is re-entered.
    teaser: TeaserDocument | None = None
