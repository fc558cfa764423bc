import pytest

from teaserflow.core.exceptions import ErrorKind
from teaserflow.main import run_workflow
from teaserflow.services.session_store import JsonFileSessionStore, MemorySessionStore


@pytest.mark.asyncio
async def test_full_workflow_downloads_pdf(tmp_path, test_settings, service_transport, fake_service, sample_pdf_bytes):
    notes = tmp_path / "notes.txt"
    notes.write_text("Acme grew revenue by 40% in 2023.", encoding="utf-8")
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG")
    store = JsonFileSessionStore(test_settings.session_store_path)

    outcome = await run_workflow(
        "https://acme.com",
        [notes, logo],
        company_name="Acme Corporation",
        download_dir=tmp_path / "out",
        settings=test_settings,
        store=store,
        transport=service_transport,
    )

    assert outcome.ok, outcome.message
    assert outcome.data == tmp_path / "out" / "teaser_t-1.pdf"
    assert outcome.data.read_bytes() == sample_pdf_bytes

    # Only the allow-listed file reached the service
    assert fake_service.uploads == [{"company_id": None, "files": ["notes.txt"]}]
    assert fake_service.sessions["sess-1"]["name"] == "Acme Corporation"
    assert fake_service.sessions["sess-1"]["website"] == "https://acme.com"
    assert fake_service.generate_requests[-1]["selected_files"] == ["notes.txt"]

    state = JsonFileSessionStore(test_settings.session_store_path).get()
    assert state.session_id == "sess-1"
    assert state.last_teaser_id == "t-1"
    assert state.teaser.title == "Acme Corporation Investment Teaser"
    assert state.uploaded_files == ["notes.txt"]


@pytest.mark.asyncio
async def test_workflow_without_files_skips_upload(tmp_path, test_settings, service_transport, fake_service):
    outcome = await run_workflow(
        "https://acme.com",
        download_dir=tmp_path,
        settings=test_settings,
        store=MemorySessionStore(),
        transport=service_transport,
    )

    assert outcome.ok
    assert fake_service.uploads == []
    assert "selected_files" not in fake_service.generate_requests[-1]


@pytest.mark.asyncio
async def test_workflow_stops_when_company_not_found(test_settings, service_transport, fake_service):
    outcome = await run_workflow(
        "https://unknown-co.com",
        settings=test_settings,
        store=MemorySessionStore(),
        transport=service_transport,
    )

    assert outcome.error_kind is ErrorKind.NOT_FOUND
    assert "Could not extract company details" in outcome.message
    assert fake_service.sessions == {}


@pytest.mark.asyncio
async def test_workflow_rejects_invalid_url_locally(test_settings, service_transport, fake_service):
    outcome = await run_workflow(
        "http://localhost:3000",
        settings=test_settings,
        store=MemorySessionStore(),
        transport=service_transport,
    )

    assert outcome.error_kind is ErrorKind.VALIDATION
    assert outcome.message.startswith("Invalid URL format")


@pytest.mark.asyncio
async def test_workflow_starts_from_a_clean_session(tmp_path, test_settings, service_transport):
    store = MemorySessionStore({"session_id": "stale", "last_teaser_id": "t-old", "uploaded_files": ["old.pdf"]})

    outcome = await run_workflow(
        "https://acme.com",
        download_dir=tmp_path,
        settings=test_settings,
        store=store,
        transport=service_transport,
    )

    assert outcome.ok
    assert store.get().session_id == "sess-1"
    assert store.get().uploaded_files == []


@pytest.mark.asyncio
async def test_workflow_reports_a_denied_step_instead_of_crashing(test_settings, service_transport, fake_service):
    fake_service.generate_status = "pending"

    outcome = await run_workflow(
        "https://acme.com",
        settings=test_settings,
        store=MemorySessionStore(),
        transport=service_transport,
    )

    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.VALIDATION
    assert outcome.message == "Generate the teaser before exporting it."
    assert fake_service.export_calls == 0
