"""Durable key/value persistence shared by all workflow steps.

Writers merge, never replace: ``put`` only touches the keys it is given, so a
step cannot clobber fields another step wrote earlier in the same session.
"""

import json
import logging
import os
import tempfile
from abc import ABC
from abc import abstractmethod
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from teaserflow.core.config import settings
from teaserflow.models.teaser_models import CompanyProfile
from teaserflow.models.teaser_models import SessionState
from teaserflow.models.teaser_models import TeaserDocument

logger = logging.getLogger(__name__)

# Argument name accepted by put() -> key in the persisted JSON object
PERSISTED_KEYS: dict[str, str] = {
    "profile": "companyProfile",
    "session_id": "session_id",
    "last_teaser_id": "last_teaser_id",
    "uploaded_files": "uploaded_files",
    "teaser": "teaser",
}


def _encode(key: str, value: Any) -> Any:
    if key == "profile":
        if isinstance(value, CompanyProfile):
            return value.model_dump(exclude_none=True)
        return CompanyProfile.model_validate(value or {}).model_dump(exclude_none=True)
    if key == "uploaded_files":
        return [str(name) for name in value or []]
    if key == "teaser" and value is not None:
        return TeaserDocument.model_validate(value).model_dump()
    return value


class SessionStore(ABC):
    """Contract for cross-step persistence: atomic get / merge-put / clear."""

    def get(self) -> SessionState:
        """Returns the current snapshot, defaulting missing or malformed fields."""
        raw = self._read()
        try:
            return SessionState.model_validate(raw)
        except PydanticValidationError:
            logger.warning("Persisted session state is malformed; falling back to defaults")
            return SessionState()

    def put(self, **partial: Any) -> SessionState:
        """Merges the given fields into the stored state and persists it in one write."""
        unknown = set(partial) - set(PERSISTED_KEYS)
        if unknown:
            raise ValueError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        merged = dict(self._read())
        for key, value in partial.items():
            merged[PERSISTED_KEYS[key]] = _encode(key, value)
        self._write(merged)
        logger.debug("Session store updated: %s", sorted(partial))
        return SessionState.model_validate(merged)

    def clear(self) -> None:
        self._write({})
        logger.info("Session store cleared")

    @abstractmethod
    def _read(self) -> dict[str, Any]:
        """Returns the raw persisted object (empty when nothing is stored)."""

    @abstractmethod
    def _write(self, data: dict[str, Any]) -> None:
        """Replaces the persisted object as a whole."""


class MemorySessionStore(SessionStore):
    """Process-local store, used by tests and one-shot runs."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {}
        if initial:
            self.put(**initial)

    def _read(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._data))

    def _write(self, data: dict[str, Any]) -> None:
        self._data = json.loads(json.dumps(data))


class JsonFileSessionStore(SessionStore):
    """Store backed by a JSON file; survives a full restart of the host process."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else settings.session_store_path

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read session store %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Session store %s does not hold a JSON object; ignoring it", self._path)
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a sibling temp file and swap it in, so readers never see a torn file.
        fd, tmp_name = tempfile.mkstemp(prefix=".session-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
