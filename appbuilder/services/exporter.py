# appbuilder/services/exporter.py

import re
import zipfile
from io import BytesIO
from typing import Sequence

from appbuilder.schemas import FileRecord, Project


def archive_name(file: FileRecord) -> str:
    path = (file.path or "").strip("/")
    # Stored paths sometimes already end with the file name
    if path and not path.endswith("/" + file.name) and path != file.name:
        return f"{path}/{file.name}"
    return path or file.name


def export_filename(project: Project) -> str:
    safe = re.sub(r"[^A-Za-z0-9._ -]+", "", project.name).strip() or f"project-{project.id}"
    return f"{safe}.zip"


def export_project_zip(project: Project, files: Sequence[FileRecord]) -> bytes:
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for file in files:
            archive.writestr(archive_name(file), file.content)
    return buffer.getvalue()
