import io
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from tenacity import wait_none

from teaserflow.core.config import Settings
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import MemorySessionStore


def build_pdf(pages: list[str]) -> bytes:
    """Render a PDF with one line of known text per page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for text in pages:
        c.drawString(72, 720, text)
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def make_pdf():
    return build_pdf


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    return build_pdf(["Acme Corp teaser page one", "Acme Corp teaser page two", "Acme Corp teaser page three"])


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    return Settings(
        api_base_url="http://teaser.test/",
        session_store_path=tmp_path / "session.json",
        download_dir=tmp_path / "downloads",
        max_file_size_bytes=1024 * 1024,
        max_files=5,
        export_fetch_attempts=3,
    )


@pytest.fixture()
def memory_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture()
def api_mock() -> AsyncMock:
    """ApiClient double; every public call is an AsyncMock to be configured per test."""
    return AsyncMock(spec=ApiClient)


# ---------------------------------------------------------------------------
# In-process fake of the remote teaser service
# ---------------------------------------------------------------------------


class FakeTeaserService:
    """Minimal stateful implementation of the teaser service HTTP surface."""

    def __init__(self, pdf_bytes: bytes) -> None:
        self.pdf_bytes = pdf_bytes
        self.sessions: dict[str, dict[str, Any]] = {}
        self.teasers: dict[str, dict[str, str]] = {}
        self.uploads: list[dict[str, Any]] = []
        self.generate_requests: list[dict[str, Any]] = []
        self.export_failures = 0
        self.export_calls = 0
        self.generate_status = "success"
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.post("/api/scrape")
        async def scrape(payload: dict[str, Any]):
            url = str(payload.get("url") or "")
            if not url:
                raise HTTPException(status_code=422, detail="url is required")
            if "unreachable" in url:
                raise HTTPException(status_code=400, detail="Could not fetch website")
            if "unknown" in url:
                return {"company": {}, "found": False}
            return {
                "company": {
                    "name": "Acme Corp",
                    "industry": "Manufacturing",
                    "headquarters": "Springfield",
                    "founded_year": 1999,
                    "email": "info@acme.com",
                },
                "found": True,
            }

        @app.post("/api/upload")
        async def upload(files: list[UploadFile] = File(...), company_id: str | None = None):
            results = []
            for f in files:
                content = await f.read()
                if f.filename.endswith(".txt"):
                    preview = content.decode("utf-8", errors="replace")
                else:
                    preview = f"Extracted text from {f.filename}"
                results.append(
                    {
                        "filename": f.filename,
                        "size": len(content),
                        "content_type": f.content_type,
                        "preview_text": preview,
                    }
                )
            self.uploads.append({"company_id": company_id, "files": [r["filename"] for r in results]})
            return {"files": results}

        @app.post("/api/company/confirm")
        async def confirm(payload: dict[str, Any]):
            company = payload.get("company") or {}
            if not company.get("name"):
                raise HTTPException(status_code=422, detail="Company name is required")
            session_id = f"sess-{len(self.sessions) + 1}"
            self.sessions[session_id] = company
            return {"session_id": session_id}

        @app.post("/api/generate")
        async def generate(payload: dict[str, Any]):
            session_id = payload.get("session_id")
            if session_id not in self.sessions:
                raise HTTPException(status_code=400, detail="Unknown session")
            self.generate_requests.append(payload)
            teaser_id = f"t-{len(self.teasers) + 1}"
            name = self.sessions[session_id]["name"]
            self.teasers[teaser_id] = {
                "title": f"{name} Investment Teaser",
                "content": f"{name} is a leading company in its sector.",
            }
            return {"teaser": {"id": teaser_id, **self.teasers[teaser_id]}, "status": self.generate_status}

        @app.post("/api/teaser/{teaser_id}/update")
        async def update(teaser_id: str, payload: dict[str, Any]):
            if teaser_id not in self.teasers:
                raise HTTPException(status_code=404, detail="Teaser not found")
            self.teasers[teaser_id] = {"title": payload["title"], "content": payload["content"]}
            return {"teaser": {"id": teaser_id, **self.teasers[teaser_id]}, "status": "success"}

        @app.get("/api/export/{teaser_id}")
        async def export(teaser_id: str):
            self.export_calls += 1
            if self.export_failures > 0:
                self.export_failures -= 1
                raise HTTPException(status_code=503, detail="Renderer busy")
            if teaser_id not in self.teasers:
                raise HTTPException(status_code=404, detail="Teaser not found")
            return Response(content=self.pdf_bytes, media_type="application/pdf")

        return app


@pytest.fixture()
def fake_service(sample_pdf_bytes) -> FakeTeaserService:
    return FakeTeaserService(sample_pdf_bytes)


@pytest.fixture()
def service_transport(fake_service) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=fake_service.app)


@pytest_asyncio.fixture()
async def service_api(test_settings, service_transport):
    client = ApiClient(test_settings, transport=service_transport, export_retry_wait=wait_none())
    yield client
    await client.aclose()
