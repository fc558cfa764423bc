import asyncio

import pytest
import pytest_asyncio

from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.validation import MAX_TITLE_CHARS
from teaserflow.models.teaser_models import TeaserDocument
from teaserflow.services.api_client import ApiResult
from teaserflow.services.session_store import MemorySessionStore
from teaserflow.workflow.editor import EditorState, TeaserEditor


def teaser(teaser_id="t-1", title="Acme Teaser", content="Acme builds tools.", status="success") -> ApiResult:
    return ApiResult.success(TeaserDocument(teaser_id=teaser_id, title=title, content=content, status=status))


@pytest.fixture()
def session_store() -> MemorySessionStore:
    return MemorySessionStore({"profile": {"name": "Acme"}, "session_id": "sess-1", "uploaded_files": ["deck.pdf"]})


@pytest_asyncio.fixture()
async def ready_editor(session_store, api_mock) -> TeaserEditor:
    api_mock.generate_teaser.return_value = teaser()
    editor = TeaserEditor(session_store, api_mock)
    await editor.enter()
    assert editor.state is EditorState.READY
    return editor


@pytest.mark.asyncio
async def test_enter_without_session_shows_error_and_makes_no_call(memory_store, api_mock):
    editor = TeaserEditor(memory_store, api_mock)

    await editor.enter()

    assert editor.state is EditorState.ERROR
    assert editor.error_kind is ErrorKind.MISSING_SESSION
    assert editor.error.startswith("Missing session")
    api_mock.generate_teaser.assert_not_called()
    assert not editor.can_advance().ok


@pytest.mark.asyncio
async def test_enter_generates_with_uploaded_files(session_store, api_mock):
    api_mock.generate_teaser.return_value = teaser()
    editor = TeaserEditor(session_store, api_mock)

    await editor.enter()

    api_mock.generate_teaser.assert_awaited_once_with("sess-1", ["deck.pdf"])
    assert editor.document == editor.saved
    assert not editor.dirty
    assert session_store.get().last_teaser_id == "t-1"
    assert editor.can_advance().ok


@pytest.mark.asyncio
async def test_generation_error_status_is_reported(session_store, api_mock):
    api_mock.generate_teaser.return_value = teaser(status="error")
    editor = TeaserEditor(session_store, api_mock)

    outcome = await editor.generate()

    assert outcome.error_kind is ErrorKind.SERVER
    assert editor.state is EditorState.ERROR
    assert "regenerating" in editor.error


@pytest.mark.asyncio
async def test_pending_document_cannot_advance(session_store, api_mock):
    api_mock.generate_teaser.return_value = teaser(status="pending")
    editor = TeaserEditor(session_store, api_mock)

    await editor.enter()

    assert not editor.can_advance().ok


@pytest.mark.asyncio
async def test_edit_marks_dirty_and_enforces_limits(ready_editor):
    outcome = ready_editor.edit("title", "x" * (MAX_TITLE_CHARS + 1))
    assert outcome.error_kind is ErrorKind.VALIDATION
    assert "title" in outcome.field_errors
    assert not ready_editor.dirty

    assert ready_editor.edit("title", "Acme: a better teaser").ok
    assert ready_editor.dirty
    # Confirmed copy is untouched until a save succeeds
    assert ready_editor.saved.title == "Acme Teaser"


@pytest.mark.asyncio
async def test_edit_rejects_non_text_fields(ready_editor):
    with pytest.raises(ValueError):
        ready_editor.edit("status", "success")


@pytest.mark.asyncio
async def test_save_without_changes_makes_no_call(ready_editor, api_mock):
    outcome = await ready_editor.save()

    assert outcome.ok
    api_mock.update_teaser.assert_not_called()


@pytest.mark.asyncio
async def test_save_success_adopts_service_copy(ready_editor, api_mock, session_store):
    ready_editor.edit("content", "Acme builds better tools.")
    api_mock.update_teaser.return_value = teaser(content="Acme builds better tools!")

    outcome = await ready_editor.save()

    assert outcome.ok
    api_mock.update_teaser.assert_awaited_once_with("t-1", "Acme Teaser", "Acme builds better tools.")
    assert ready_editor.saved.content == "Acme builds better tools!"
    assert ready_editor.document == ready_editor.saved
    assert not ready_editor.dirty
    assert session_store.get().last_teaser_id == "t-1"


@pytest.mark.asyncio
async def test_save_failure_keeps_working_copy(ready_editor, api_mock):
    ready_editor.edit("title", "Unsaved title")
    api_mock.update_teaser.return_value = ApiResult.failure(ErrorKind.NETWORK)

    outcome = await ready_editor.save()

    assert outcome.error_kind is ErrorKind.NETWORK
    assert ready_editor.state is EditorState.ERROR
    assert ready_editor.document.title == "Unsaved title"
    assert ready_editor.saved.title == "Acme Teaser"
    assert ready_editor.dirty


@pytest.mark.asyncio
async def test_only_one_mutating_call_in_flight(ready_editor, api_mock):
    ready_editor.edit("title", "Changed")
    release = asyncio.Event()

    async def slow_update(teaser_id, title, content):
        await release.wait()
        return teaser(title=title)

    api_mock.update_teaser.side_effect = slow_update
    api_mock.generate_teaser.reset_mock()

    saving = asyncio.create_task(ready_editor.save())
    await asyncio.sleep(0)
    assert ready_editor.busy

    regen = await ready_editor.regenerate()
    second_save = await ready_editor.save()
    edit = ready_editor.edit("title", "During save")
    release.set()
    saved = await saving

    assert regen.error_kind is ErrorKind.BUSY
    assert second_save.error_kind is ErrorKind.BUSY
    assert edit.error_kind is ErrorKind.BUSY
    assert saved.ok
    api_mock.generate_teaser.assert_not_called()
    assert api_mock.update_teaser.await_count == 1


@pytest.mark.asyncio
async def test_regenerate_discards_unsaved_edits(ready_editor, api_mock):
    ready_editor.edit("content", "Local edit")
    api_mock.generate_teaser.return_value = teaser(teaser_id="t-2", content="Fresh text")

    outcome = await ready_editor.regenerate()

    assert outcome.ok
    assert ready_editor.document.content == "Fresh text"
    assert not ready_editor.dirty
    assert api_mock.generate_teaser.await_args.args == ("sess-1", ["deck.pdf"])


@pytest.mark.asyncio
async def test_failed_save_can_be_retried(ready_editor, api_mock, session_store):
    ready_editor.edit("title", "Retry me")
    api_mock.update_teaser.return_value = ApiResult.failure(ErrorKind.SERVER)
    await ready_editor.save()
    assert ready_editor.state is EditorState.ERROR

    api_mock.update_teaser.return_value = teaser(title="Retry me")
    outcome = await ready_editor.save()

    assert outcome.ok
    assert ready_editor.state is EditorState.READY
    assert ready_editor.error == ""
    assert session_store.get().teaser.title == "Retry me"


@pytest.mark.asyncio
async def test_enter_reloads_saved_teaser_instead_of_generating(api_mock):
    store = MemorySessionStore(
        {
            "session_id": "sess-1",
            "last_teaser_id": "t-1",
            "teaser": {"teaser_id": "t-1", "title": "Saved title", "content": "Saved body"},
        }
    )
    editor = TeaserEditor(store, api_mock)

    await editor.enter()

    api_mock.generate_teaser.assert_not_called()
    assert editor.state is EditorState.READY
    assert editor.document.title == "Saved title"
    assert editor.document == editor.saved
    assert editor.can_advance().ok


@pytest.mark.asyncio
async def test_enter_generates_when_stored_teaser_is_stale(api_mock):
    store = MemorySessionStore(
        {
            "session_id": "sess-1",
            "last_teaser_id": "t-2",
            "teaser": {"teaser_id": "t-1", "title": "Old", "content": "Old"},
        }
    )
    api_mock.generate_teaser.return_value = teaser(teaser_id="t-3")
    editor = TeaserEditor(store, api_mock)

    await editor.enter()

    api_mock.generate_teaser.assert_awaited_once()
    assert store.get().teaser.teaser_id == "t-3"
    assert store.get().last_teaser_id == "t-3"


@pytest.mark.asyncio
async def test_unknown_session_on_generate_drops_session(session_store, api_mock):
    api_mock.generate_teaser.return_value = ApiResult.failure(ErrorKind.MISSING_SESSION, "Unknown session")
    editor = TeaserEditor(session_store, api_mock)

    await editor.enter()

    assert editor.state is EditorState.ERROR
    assert editor.error_kind is ErrorKind.MISSING_SESSION
    assert editor.error.startswith("Missing session")
    assert session_store.get().session_id is None
    # Profile and uploads survive so the user only has to confirm again
    assert session_store.get().profile.name == "Acme"
    assert session_store.get().uploaded_files == ["deck.pdf"]


@pytest.mark.asyncio
async def test_unknown_session_on_save_keeps_edits_and_drops_session(ready_editor, api_mock, session_store):
    ready_editor.edit("title", "Unsaved title")
    api_mock.update_teaser.return_value = ApiResult.failure(ErrorKind.MISSING_SESSION, "Session expired")

    outcome = await ready_editor.save()

    assert outcome.error_kind is ErrorKind.MISSING_SESSION
    assert ready_editor.document.title == "Unsaved title"
    assert session_store.get().session_id is None
    api_mock.generate_teaser.reset_mock()
    regen = await ready_editor.regenerate()
    assert regen.error_kind is ErrorKind.MISSING_SESSION
    api_mock.generate_teaser.assert_not_called()
