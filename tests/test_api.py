import io
import zipfile
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from appbuilder import main
from appbuilder.schemas import PlannedFile
from appbuilder.services.preview_state import PreviewTracker
from appbuilder.services.storage import MemStorage


@pytest.fixture
def store():
    return MemStorage()


@pytest.fixture
def tracker():
    return PreviewTracker()


@pytest.fixture
def generator(monkeypatch):
    fake = Mock()
    fake.generate_files.return_value = [
        (PlannedFile(name="App.jsx", path="src", description="root"), "```jsx\nfunction App(){return null;}\n```"),
        (PlannedFile(name="index.css", description="styles"), "body{color:red}"),
    ]
    monkeypatch.setattr(main, "get_generator", lambda: fake)
    return fake


@pytest.fixture
def client(store, tracker):
    main.app.dependency_overrides[main.get_storage] = lambda: store
    main.app.dependency_overrides[main.get_tracker] = lambda: tracker
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def project_id(client):
    response = client.post("/api/projects", json={"name": "Todo App"})
    assert response.status_code == 201
    return response.json()["id"]


def add_file(client, project_id, name, content, path=""):
    response = client.post(
        f"/api/projects/{project_id}/files",
        json={"name": name, "path": path, "content": content},
    )
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["llm_provider"] == "groq"


def test_project_crud(client, project_id):
    assert client.get(f"/api/projects/{project_id}").json()["name"] == "Todo App"

    response = client.put(f"/api/projects/{project_id}", json={"description": "tasks"})
    assert response.json()["description"] == "tasks"

    assert len(client.get("/api/projects").json()) == 1
    assert client.delete(f"/api/projects/{project_id}").status_code == 200
    assert client.get(f"/api/projects/{project_id}").status_code == 404


def test_missing_records_are_404(client):
    assert client.get("/api/projects/5/files").status_code == 404
    assert client.put("/api/files/5", json={"content": "x"}).status_code == 404
    assert client.delete("/api/files/5").status_code == 404
    assert client.get("/api/projects/5/preview").status_code == 404


def test_file_crud(client, project_id):
    record = add_file(client, project_id, "App.jsx", "old")

    response = client.put(f"/api/files/{record['id']}", json={"content": "new"})
    assert response.json()["content"] == "new"
    assert [f["name"] for f in client.get(f"/api/projects/{project_id}/files").json()] == ["App.jsx"]

    assert client.delete(f"/api/files/{record['id']}").status_code == 200
    assert client.get(f"/api/projects/{project_id}/files").json() == []


def test_preview_of_empty_project_is_skeleton(client, project_id, tracker):
    response = client.get(f"/api/projects/{project_id}/preview")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "<title>Todo App</title>" in response.text
    assert '<div id="root"></div>' in response.text
    assert tracker.get(project_id).state == "ready"


def test_preview_sanitizes_without_touching_storage(client, project_id, store):
    add_file(client, project_id, "App.jsx", "```jsx\nfunction App(){return null;}\n```")

    document = client.get(f"/api/projects/{project_id}/preview").text

    assert "function App(){return null;}" in document
    assert "```" not in document
    assert store.list_files(project_id)[0].content.startswith("```jsx")


def test_status_reporting_and_fallback(client, project_id):
    add_file(client, project_id, "App.jsx", "function App(){return null;}")
    client.get(f"/api/projects/{project_id}/preview")

    response = client.post(
        f"/api/projects/{project_id}/preview/status",
        json={"status": "errored", "message": "X is not defined"},
    )
    assert response.json()["state"] == "errored"
    assert response.json()["fallback"] is False

    client.post(f"/api/projects/{project_id}/preview/status", json={"status": "init_failed"})
    status = client.get(f"/api/projects/{project_id}/preview/status").json()
    assert status["fallback"] is True

    document = client.get(f"/api/projects/{project_id}/preview").text
    assert "App Structure Preview" in document
    assert "<script" not in document

    # editing a file starts over with the live preview
    add_file(client, project_id, "extra.css", "p{}")
    assert client.get(f"/api/projects/{project_id}/preview/status").json()["state"] == "idle"
    assert "App Structure Preview" not in client.get(f"/api/projects/{project_id}/preview").text


def test_invalid_status_report_is_422(client, project_id):
    response = client.post(f"/api/projects/{project_id}/preview/status", json={"status": "exploded"})
    assert response.status_code == 422


def test_explicit_fallback_and_structure(client, project_id):
    add_file(client, project_id, "App.jsx", "function App(){return null;}")

    assert "App Structure Preview" in client.get(f"/api/projects/{project_id}/preview?fallback=true").text

    structure = client.get(f"/api/projects/{project_id}/preview/structure").json()
    assert structure["title"] == "Todo App"
    assert structure["entry_file"] == "App.jsx"
    assert structure["scripts"][0]["component"] == "App"


def test_clean_files(client, project_id):
    fenced = add_file(client, project_id, "App.jsx", "```jsx\nfunction App(){}\n```")
    add_file(client, project_id, "a.css", "p{}")

    response = client.post(f"/api/projects/{project_id}/clean-files")

    assert response.json() == {"project_id": project_id, "cleaned": [fenced["id"]]}
    files = client.get(f"/api/projects/{project_id}/files").json()
    assert files[0]["content"] == "function App(){}\n"


def test_generate_app_stores_files(client, project_id, generator, store):
    response = client.post(
        "/api/ai/generate-app",
        json={"description": "a todo app", "project_id": project_id, "model": "fast"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [f["name"] for f in body["files"]] == ["App.jsx", "index.css"]
    assert body["files"][0]["description"] == "root"
    generator.generate_files.assert_called_once_with("a todo app", "fast")
    assert len(store.list_files(project_id)) == 2


def test_generate_app_unknown_project(client, generator):
    response = client.post("/api/ai/generate-app", json={"description": "x", "project_id": 99})
    assert response.status_code == 404
    generator.generate_files.assert_not_called()


def test_generate_app_requires_description(client, project_id, generator):
    response = client.post("/api/ai/generate-app", json={"description": "", "project_id": project_id})
    assert response.status_code == 422


def test_generate_app_from_uploaded_brief(client, project_id, generator):
    response = client.post(
        "/api/ai/generate-app/upload",
        data={"project_id": str(project_id)},
        files={"file": ("brief.txt", io.BytesIO(b"A   todo\napp"), "text/plain")},
    )

    assert response.status_code == 200
    generator.generate_files.assert_called_once_with("A todo app", "default")


def test_generate_app_from_empty_brief_is_400(client, project_id, generator):
    response = client.post(
        "/api/ai/generate-app/upload",
        data={"project_id": str(project_id)},
        files={"file": ("brief.txt", io.BytesIO(b"   "), "text/plain")},
    )
    assert response.status_code == 400


def test_generator_unavailable_is_503(client, project_id, monkeypatch):
    monkeypatch.setattr(main, "_generator", None)
    monkeypatch.setattr(main, "AppGenerator", Mock(side_effect=RuntimeError("GROQ_API_KEY is missing.")))

    response = client.post("/api/ai/generate-app", json={"description": "x", "project_id": project_id})
    assert response.status_code == 503


def test_export(client, project_id):
    add_file(client, project_id, "App.jsx", "function App(){}", path="src")

    response = client.get(f"/api/projects/{project_id}/export")

    assert response.headers["content-type"] == "application/zip"
    assert 'filename="Todo App.zip"' in response.headers["content-disposition"]
    archive = zipfile.ZipFile(io.BytesIO(response.content))
    assert archive.read("src/App.jsx") == b"function App(){}"
