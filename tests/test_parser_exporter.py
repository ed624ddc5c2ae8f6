import zipfile
from io import BytesIO

from docx import Document

from appbuilder.schemas import FileRecord, Project
from appbuilder.services.exporter import archive_name, export_filename, export_project_zip
from appbuilder.services.parser import brief_to_description, extract_text_from_bytes


def test_plain_text_brief():
    assert extract_text_from_bytes(b"  A recipe app\n", "text/plain") == "A recipe app"


def test_empty_upload_is_empty_string():
    assert extract_text_from_bytes(b"", "application/pdf") == ""


def test_docx_brief():
    doc = Document()
    doc.add_paragraph("Build a habit tracker")
    doc.add_paragraph("with streaks")
    buffer = BytesIO()
    doc.save(buffer)

    text = extract_text_from_bytes(buffer.getvalue(), "", "brief.docx")
    assert text == "Build a habit tracker\nwith streaks"


def test_broken_documents_yield_empty_string():
    assert extract_text_from_bytes(b"not a pdf", "application/pdf") == ""
    assert extract_text_from_bytes(b"not a zip", "application/vnd.openxmlformats-officedocument.wordprocessingml.document") == ""


def test_brief_to_description_collapses_whitespace():
    assert brief_to_description("A  todo\n\napp\t") == "A todo app"


def record(file_id, name, path="", content=""):
    return FileRecord(id=file_id, project_id=1, name=name, path=path, content=content)


def test_archive_names():
    assert archive_name(record(1, "App.jsx")) == "App.jsx"
    assert archive_name(record(2, "App.jsx", "src")) == "src/App.jsx"
    assert archive_name(record(3, "App.jsx", "/src/")) == "src/App.jsx"
    assert archive_name(record(4, "App.jsx", "src/App.jsx")) == "src/App.jsx"


def test_export_zip_contains_raw_contents():
    project = Project(id=3, name="My Shop!")
    files = [record(1, "App.jsx", "src", "```jsx\nx\n```"), record(2, "index.html", "", "<html></html>")]

    archive = zipfile.ZipFile(BytesIO(export_project_zip(project, files)))

    assert archive.namelist() == ["src/App.jsx", "index.html"]
    assert archive.read("src/App.jsx").decode() == "```jsx\nx\n```"
    assert export_filename(project) == "My Shop.zip"
    assert export_filename(Project(id=4, name="???")) == "project-4.zip"
