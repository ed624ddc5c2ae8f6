from datetime import datetime, timezone
from typing import List, Optional, Literal

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SourceFile(BaseModel):
    name: str
    path: str = ""
    content: str = ""


class FileRecord(SourceFile):
    id: int
    project_id: int
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class FileCreate(BaseModel):
    name: str
    path: str = ""
    content: str = ""


class FileUpdate(BaseModel):
    name: Optional[str] = None
    path: Optional[str] = None
    content: Optional[str] = None


class Project(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    framework: str = "react"
    backend: str = "none"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    framework: str = "react"
    backend: str = "none"


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    framework: Optional[str] = None
    backend: Optional[str] = None


class CleanFilesResponse(BaseModel):
    project_id: int
    cleaned: List[int] = Field(default_factory=list)  # ids of rewritten files


class PlannedFile(BaseModel):
    name: str
    path: str = ""
    description: str = ""


class GenerateAppRequest(BaseModel):
    description: str = Field(..., min_length=1)
    project_id: int
    model: str = "default"  # alias from GROQ_MODEL_ALIASES or a raw Groq model id


class GeneratedFile(FileRecord):
    description: str = ""


class GenerateAppResponse(BaseModel):
    message: str = "Application generated successfully"
    files: List[GeneratedFile] = Field(default_factory=list)


PreviewStateName = Literal["idle", "composing", "ready", "errored"]


class PreviewStatus(BaseModel):
    project_id: int
    state: PreviewStateName = "idle"
    message: Optional[str] = None
    fallback: bool = False  # host should show the structural preview
    updated_at: datetime = Field(default_factory=_now)


class PreviewReport(BaseModel):
    status: Literal["ready", "errored", "init_failed"]
    message: Optional[str] = None


class FileExcerpt(BaseModel):
    name: str
    excerpt: str
    component: Optional[str] = None  # first component-looking declaration


class FallbackPreview(BaseModel):
    title: str
    entry_file: Optional[str] = None
    scripts: List[FileExcerpt] = Field(default_factory=list)
    styles: List[str] = Field(default_factory=list)
    notice: str = "Direct preview unavailable - app structure shown instead"


class HealthResponse(BaseModel):
    status: str = "ok"
    llm_provider: str
    has_llm_access: bool
    projects: Optional[int] = None
