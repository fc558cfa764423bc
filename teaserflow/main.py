"""Headless driver: runs the whole teaser workflow from the command line.

    teaserflow --url https://acme.com --file deck.pdf --download-dir out/
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx

from teaserflow.core.config import Settings
from teaserflow.core.config import settings as default_settings
from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.logging import setup_logging
from teaserflow.models.teaser_models import CandidateFile
from teaserflow.services.api_client import ApiClient
from teaserflow.services.session_store import JsonFileSessionStore
from teaserflow.services.session_store import SessionStore
from teaserflow.workflow.confirm import CompanyConfirm
from teaserflow.workflow.controller import WorkflowController
from teaserflow.workflow.editor import TeaserEditor
from teaserflow.workflow.export import ExportCoordinator
from teaserflow.workflow.outcome import Outcome
from teaserflow.workflow.upload import UploadCoordinator
from teaserflow.workflow.website import WebsiteInput

logger = logging.getLogger(__name__)


async def run_workflow(
    url: str,
    files: list[Path] | None = None,
    *,
    company_name: str | None = None,
    download_dir: Path | None = None,
    settings: Settings | None = None,
    store: SessionStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Outcome[Path]:
    """Drives every step in order and returns the path of the downloaded PDF."""
    settings = settings or default_settings
    store = store or JsonFileSessionStore(settings.session_store_path)

    async with ApiClient(settings, transport=transport) as api:
        controller = WorkflowController(store, api, settings)
        try:
            await controller.restart()
            moved = await _advance(controller)
            if not moved.ok:
                return moved

            website: WebsiteInput = controller.view
            scraped = await website.submit(url)
            if not scraped.ok:
                return Outcome.failure(scraped.error_kind, scraped.message)
            moved = await _advance(controller)
            if not moved.ok:
                return moved

            uploader: UploadCoordinator = controller.view
            if files:
                added = uploader.add_files([CandidateFile.from_path(p) for p in files])
                for rejected in added.rejected:
                    logger.warning("Skipping %s: %s", rejected.name, rejected.reason)
                if uploader.files:
                    uploaded = await uploader.upload()
                    if not uploaded.ok:
                        return Outcome.failure(uploaded.error_kind, uploaded.message)
            moved = await _advance(controller)
            if not moved.ok:
                return moved

            form: CompanyConfirm = controller.view
            if company_name:
                form.edit("name", company_name)
            confirmed = await form.confirm()
            if not confirmed.ok:
                return Outcome.failure(confirmed.error_kind, confirmed.message, confirmed.field_errors)
            moved = await _advance(controller)
            if not moved.ok:
                return moved

            editor: TeaserEditor = controller.view
            if editor.error:
                return Outcome.failure(editor.error_kind or ErrorKind.SERVER, editor.error)
            moved = await _advance(controller)
            if not moved.ok:
                return moved

            exporter: ExportCoordinator = controller.view
            if exporter.error:
                return Outcome.failure(exporter.error_kind or ErrorKind.SERVER, exporter.error)
            return exporter.download(download_dir)
        finally:
            await controller.aclose()


async def _advance(controller: WorkflowController) -> Outcome[Path]:
    """Moves one step forward and waits for the new step to finish loading."""
    moved = await controller.forward()
    if not moved.ok:
        return Outcome.failure(moved.error_kind, moved.message)
    await controller.wait_for_entry()
    return Outcome.success()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="teaserflow", description="Generate an investment teaser PDF.")
    parser.add_argument("--url", required=True, help="Company homepage, e.g. https://acme.com")
    parser.add_argument("--file", dest="files", action="append", type=Path, default=[], help="Supporting document")
    parser.add_argument("--name", dest="company_name", help="Override the scraped company name")
    parser.add_argument("--download-dir", type=Path, default=None, help="Where to save the PDF")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    outcome = asyncio.run(
        run_workflow(
            args.url,
            args.files,
            company_name=args.company_name,
            download_dir=args.download_dir,
        )
    )
    if not outcome.ok:
        print(f"Error: {outcome.message}", file=sys.stderr)
        return 1
    print(f"Teaser saved to {outcome.data}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
