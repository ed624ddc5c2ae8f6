# appbuilder/services/storage.py

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from appbuilder.schemas import (
    FileCreate,
    FileRecord,
    FileUpdate,
    Project,
    ProjectCreate,
    ProjectUpdate,
)
from appbuilder.services.sanitizer import clean_content, needs_cleaning

logger = logging.getLogger(__name__)


class MemStorage:
    """In-memory projects and files keyed by auto-increment ids."""

    def __init__(self) -> None:
        self._projects: Dict[int, Project] = {}
        self._files: Dict[int, FileRecord] = {}
        self._project_seq = 1
        self._file_seq = 1
        self._lock = threading.RLock()

    # ---------------------------------------------------------
    # PROJECTS
    # ---------------------------------------------------------
    def list_projects(self) -> List[Project]:
        with self._lock:
            return list(self._projects.values())

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._lock:
            return self._projects.get(project_id)

    def create_project(self, data: ProjectCreate) -> Project:
        with self._lock:
            project = Project(id=self._project_seq, **data.model_dump())
            self._projects[project.id] = project
            self._project_seq += 1
        logger.info("Created project %s (%s)", project.id, project.name)
        return project

    def update_project(self, project_id: int, patch: ProjectUpdate) -> Optional[Project]:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                return None
            changes = patch.model_dump(exclude_unset=True, exclude_none=True)
            updated = project.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
            self._projects[project_id] = updated
            return updated

    def delete_project(self, project_id: int) -> bool:
        with self._lock:
            if self._projects.pop(project_id, None) is None:
                return False
            for file_id in [f.id for f in self._files.values() if f.project_id == project_id]:
                del self._files[file_id]
        logger.info("Deleted project %s", project_id)
        return True

    # ---------------------------------------------------------
    # FILES
    # ---------------------------------------------------------
    def list_files(self, project_id: int) -> List[FileRecord]:
        with self._lock:
            return [f for f in self._files.values() if f.project_id == project_id]

    def get_file(self, file_id: int) -> Optional[FileRecord]:
        with self._lock:
            return self._files.get(file_id)

    def create_file(self, project_id: int, data: FileCreate) -> FileRecord:
        with self._lock:
            record = FileRecord(id=self._file_seq, project_id=project_id, **data.model_dump())
            self._files[record.id] = record
            self._file_seq += 1
        logger.debug("Created file %s in project %s", record.name, project_id)
        return record

    def update_file(self, file_id: int, patch: FileUpdate) -> Optional[FileRecord]:
        with self._lock:
            record = self._files.get(file_id)
            if record is None:
                return None
            changes = patch.model_dump(exclude_unset=True, exclude_none=True)
            updated = record.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
            self._files[file_id] = updated
            return updated

    def delete_file(self, file_id: int) -> bool:
        with self._lock:
            return self._files.pop(file_id, None) is not None

    def clean_project_files(self, project_id: int) -> List[int]:
        """Rewrite fenced file contents in place; returns the touched ids."""
        cleaned = []
        with self._lock:
            for record in self.list_files(project_id):
                if not needs_cleaning(record.content):
                    continue
                self.update_file(record.id, FileUpdate(content=clean_content(record.content)))
                cleaned.append(record.id)
        if cleaned:
            logger.info("Cleaned %d fenced file(s) in project %s", len(cleaned), project_id)
        return cleaned
