# appbuilder/main.py

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from appbuilder.config import CORS_ORIGINS, GROQ_API_KEY, LOG_LEVEL
from appbuilder.schemas import (
    CleanFilesResponse,
    FallbackPreview,
    FileCreate,
    FileRecord,
    FileUpdate,
    GenerateAppRequest,
    GenerateAppResponse,
    GeneratedFile,
    HealthResponse,
    PreviewReport,
    PreviewStatus,
    Project,
    ProjectCreate,
    ProjectUpdate,
)
from appbuilder.services.composer import RenderContext, render_fallback_html
from appbuilder.services.exporter import export_filename, export_project_zip
from appbuilder.services.llm import AppGenerator
from appbuilder.services.parser import brief_to_description, extract_text_from_bytes
from appbuilder.services.preview_state import PreviewTracker
from appbuilder.services.storage import MemStorage

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("appbuilder")

storage = MemStorage()
tracker = PreviewTracker()
_generator: Optional[AppGenerator] = None


def get_storage() -> MemStorage:
    return storage


def get_tracker() -> PreviewTracker:
    return tracker


def get_generator() -> AppGenerator:
    global _generator
    if _generator is None:
        try:
            _generator = AppGenerator()
        except RuntimeError as e:
            log.error("Generator unavailable: %s", e)
            raise HTTPException(status_code=503, detail=str(e))
    return _generator


def _require_project(store: MemStorage, project_id: int) -> Project:
    project = store.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _require_file(store: MemStorage, file_id: int) -> FileRecord:
    record = store.get_file(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    return record


# --------------------------------------------
# FASTAPI APP
# --------------------------------------------
app = FastAPI(title="AppBuilder")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/", response_model=HealthResponse)
@app.get("/api/health", response_model=HealthResponse)
def health(store: MemStorage = Depends(get_storage)):
    return HealthResponse(
        llm_provider="groq",
        has_llm_access=bool(GROQ_API_KEY),
        projects=len(store.list_projects()),
    )


# --------------------------------------------
# Projects
# --------------------------------------------
@app.get("/api/projects", response_model=List[Project])
def list_projects(store: MemStorage = Depends(get_storage)):
    return store.list_projects()


@app.post("/api/projects", response_model=Project, status_code=201)
def create_project(data: ProjectCreate, store: MemStorage = Depends(get_storage)):
    return store.create_project(data)


@app.get("/api/projects/{project_id}", response_model=Project)
def get_project(project_id: int, store: MemStorage = Depends(get_storage)):
    return _require_project(store, project_id)


@app.put("/api/projects/{project_id}", response_model=Project)
def update_project(project_id: int, patch: ProjectUpdate, store: MemStorage = Depends(get_storage)):
    _require_project(store, project_id)
    return store.update_project(project_id, patch)


@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: int,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, project_id)
    store.delete_project(project_id)
    states.forget(project_id)
    return {"message": "Project deleted successfully"}


# --------------------------------------------
# Files
# --------------------------------------------
@app.get("/api/projects/{project_id}/files", response_model=List[FileRecord])
def list_files(project_id: int, store: MemStorage = Depends(get_storage)):
    _require_project(store, project_id)
    return store.list_files(project_id)


@app.post("/api/projects/{project_id}/files", response_model=FileRecord, status_code=201)
def create_file(
    project_id: int,
    data: FileCreate,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, project_id)
    record = store.create_file(project_id, data)
    states.forget(project_id)
    return record


@app.put("/api/files/{file_id}", response_model=FileRecord)
def update_file(
    file_id: int,
    patch: FileUpdate,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    record = _require_file(store, file_id)
    updated = store.update_file(file_id, patch)
    states.forget(record.project_id)
    return updated


@app.delete("/api/files/{file_id}")
def delete_file(
    file_id: int,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    record = _require_file(store, file_id)
    store.delete_file(file_id)
    states.forget(record.project_id)
    return {"message": "File deleted successfully"}


@app.post("/api/projects/{project_id}/clean-files", response_model=CleanFilesResponse)
def clean_files(
    project_id: int,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, project_id)
    cleaned = store.clean_project_files(project_id)
    if cleaned:
        states.forget(project_id)
    return CleanFilesResponse(project_id=project_id, cleaned=cleaned)


# --------------------------------------------
# Preview
# --------------------------------------------
def _render_context(store: MemStorage, project_id: int) -> RenderContext:
    project = _require_project(store, project_id)
    return RenderContext(project_id, store.list_files(project_id), project.name)


@app.get("/api/projects/{project_id}/preview", response_class=HTMLResponse)
def preview(
    project_id: int,
    fallback: bool = False,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    context = _render_context(store, project_id)

    if fallback or states.uses_fallback(project_id):
        return HTMLResponse(render_fallback_html(context.fallback()))

    states.begin(project_id)
    document = context.document
    states.complete(project_id)
    return HTMLResponse(document)


@app.get("/api/projects/{project_id}/preview/structure", response_model=FallbackPreview)
def preview_structure(project_id: int, store: MemStorage = Depends(get_storage)):
    return _render_context(store, project_id).fallback()


@app.get("/api/projects/{project_id}/preview/status", response_model=PreviewStatus)
def preview_status(
    project_id: int,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, project_id)
    return states.get(project_id)


@app.post("/api/projects/{project_id}/preview/status", response_model=PreviewStatus)
def report_preview_status(
    project_id: int,
    report: PreviewReport,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, project_id)
    return states.report(project_id, report.status, report.message)


# --------------------------------------------
# AI generation
# --------------------------------------------
def _generate_and_store(
    description: str,
    project_id: int,
    model: str,
    store: MemStorage,
    states: PreviewTracker,
    generator: AppGenerator,
) -> GenerateAppResponse:
    _require_project(store, project_id)
    log.info("Generating app for project %s with description: %s", project_id, description[:200])

    stored = []
    for planned, content in generator.generate_files(description, model):
        record = store.create_file(
            project_id,
            FileCreate(name=planned.name, path=planned.path, content=content),
        )
        stored.append(GeneratedFile(**record.model_dump(), description=planned.description))

    states.forget(project_id)
    return GenerateAppResponse(files=stored)


@app.post("/api/ai/generate-app", response_model=GenerateAppResponse)
def generate_app(
    request: GenerateAppRequest,
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, request.project_id)
    generator = get_generator()
    return _generate_and_store(request.description, request.project_id, request.model, store, states, generator)


@app.post("/api/ai/generate-app/upload", response_model=GenerateAppResponse)
async def generate_app_from_document(
    project_id: int = Form(...),
    model: str = Form("default"),
    file: UploadFile = File(...),
    store: MemStorage = Depends(get_storage),
    states: PreviewTracker = Depends(get_tracker),
):
    _require_project(store, project_id)
    file_bytes = await file.read()
    text = extract_text_from_bytes(file_bytes, file.content_type, file.filename)
    description = brief_to_description(text)
    if not description:
        raise HTTPException(status_code=400, detail="Could not read a description from the uploaded document")

    generator = get_generator()
    return await run_in_threadpool(
        _generate_and_store, description, project_id, model, store, states, generator
    )


# --------------------------------------------
# Export
# --------------------------------------------
@app.get("/api/projects/{project_id}/export")
def export_project(project_id: int, store: MemStorage = Depends(get_storage)):
    project = _require_project(store, project_id)
    log.info("Exporting project %s", project_id)
    payload = export_project_zip(project, store.list_files(project_id))
    return Response(
        content=payload,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(project)}"'},
    )
