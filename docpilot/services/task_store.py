"""JSON file persistence for the task queue.

The whole document is read and written on every operation. Reads never
fail: a missing or corrupt file yields an empty queue so a fresh install (or
a damaged file) bootstraps instead of crashing.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from pydantic import ValidationError as PydanticValidationError

from ..models.task import TaskQueueDocument, utcnow

logger = logging.getLogger(__name__)


class TaskStore:
    """Load/save round-trip of a :class:`TaskQueueDocument` at a fixed path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> TaskQueueDocument:
        """Return the stored document, or an empty one if absent or unreadable."""
        if not self.path.exists():
            return TaskQueueDocument()

        try:
            raw = self.path.read_text(encoding="utf-8")
            return TaskQueueDocument.model_validate(json.loads(raw))
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.warning(
                "Failed to load task queue from %s, starting empty: %s", self.path, e,
                extra={"path": str(self.path)},
            )
            return TaskQueueDocument()

    def save(self, document: TaskQueueDocument) -> None:
        """Persist *document*, stamping ``lastUpdated``."""
        document.last_updated = utcnow()
        payload = json.dumps(document.model_dump(mode="json", by_alias=True), indent=2)
        write_atomic(self.path, payload)


def write_atomic(path: Path, text: str) -> None:
    """Write *text* to *path* via a temp file renamed over the target.

    Readers never observe a half-written file, and a crash mid-write leaves
    the previous contents in place.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise
