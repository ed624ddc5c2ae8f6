# appbuilder/services/preview_state.py

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from appbuilder.schemas import PreviewStatus

logger = logging.getLogger(__name__)


class PreviewState(str, Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    READY = "ready"
    ERRORED = "errored"


class PreviewTracker:
    """
    Last known render state per project.

    Composition always finishes in READY; ERRORED only ever comes from the
    rendering surface reporting back after the document ran. An init failure
    flags the project for the static structure preview, with no retries.
    """

    def __init__(self) -> None:
        self._statuses: Dict[int, PreviewStatus] = {}
        self._lock = threading.Lock()

    def _set(self, project_id: int, state: PreviewState, message: Optional[str] = None, fallback: bool = False) -> PreviewStatus:
        status = PreviewStatus(
            project_id=project_id,
            state=state.value,
            message=message,
            fallback=fallback,
            updated_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._statuses[project_id] = status
        return status

    def get(self, project_id: int) -> PreviewStatus:
        with self._lock:
            status = self._statuses.get(project_id)
        return status or PreviewStatus(project_id=project_id)

    def begin(self, project_id: int) -> PreviewStatus:
        # A new cycle replaces whatever the previous one left behind
        return self._set(project_id, PreviewState.COMPOSING)

    def complete(self, project_id: int) -> PreviewStatus:
        return self._set(project_id, PreviewState.READY)

    def report(self, project_id: int, status: str, message: Optional[str] = None) -> PreviewStatus:
        if status == "ready":
            return self._set(project_id, PreviewState.READY)

        if status == "init_failed":
            logger.warning("Preview sandbox failed to start for project %s: %s", project_id, message)
            return self._set(project_id, PreviewState.ERRORED, message or "Preview could not be initialized", fallback=True)

        if status == "errored":
            logger.info("Preview for project %s reported an error: %s", project_id, message)
            return self._set(project_id, PreviewState.ERRORED, message)

        raise ValueError(f"Unknown preview status: {status}")

    def uses_fallback(self, project_id: int) -> bool:
        return self.get(project_id).fallback

    def forget(self, project_id: int) -> None:
        with self._lock:
            self._statuses.pop(project_id, None)
