# appbuilder/services/composer.py

import html
import logging
import re
from typing import List, NamedTuple, Optional, Sequence, Tuple

from appbuilder.config import REACT_VERSION
from appbuilder.schemas import FallbackPreview, FileExcerpt, SourceFile
from appbuilder.services.sanitizer import clean_content

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "App Preview"
SCRIPT_SUFFIXES = (".js", ".jsx", ".ts", ".tsx")
ENTRY_FILE_NAMES = ("app.jsx", "app.js", "app.tsx", "app.ts")
FALLBACK_SCRIPT_LIMIT = 4
EXCERPT_LENGTH = 200

# Message tag posted to the host window by the sandboxed document
PREVIEW_MESSAGE_SOURCE = "appbuilder-preview"

RUNTIME_LIBRARIES = (
    f"https://unpkg.com/react@{REACT_VERSION}/umd/react.development.js",
    f"https://unpkg.com/react-dom@{REACT_VERSION}/umd/react-dom.development.js",
    "https://unpkg.com/@babel/standalone/babel.min.js",
)

SKELETON_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body>
  <div id="root"></div>
</body>
</html>"""

# Plain script, runs before Babel so it also sees transpile-time errors.
ERROR_HANDLER_SCRIPT = """  <script>
    window.global = window;
    window.__previewReport = function (status, message) {
      try {
        if (window.parent && window.parent !== window) {
          window.parent.postMessage({ source: "%(source)s", status: status, message: message || null }, "*");
        }
      } catch (e) {}
    };
    window.__showDiagnostic = function (title, message, tone) {
      var root = document.getElementById("root");
      if (!root) {
        root = document.createElement("div");
        root.id = "root";
        document.body.appendChild(root);
      }
      var panel = document.createElement("div");
      panel.setAttribute("style", tone === "info"
        ? "padding: 20px; color: #555;"
        : "padding: 20px; margin: 20px; color: #c53030; background: #fff5f5; border: 1px solid #f56565; border-radius: 5px;");
      var heading = document.createElement("h2");
      heading.style.marginTop = "0";
      heading.textContent = title;
      var text = document.createElement("p");
      text.textContent = message;
      panel.appendChild(heading);
      panel.appendChild(text);
      root.innerHTML = "";
      root.appendChild(panel);
    };
    window.addEventListener("error", function (event) {
      var message = (event.error && event.error.message) || event.message || "Unknown error";
      var root = document.getElementById("root");
      // leave anything React already rendered (error boundary) alone
      if (!root || root.childElementCount === 0) {
        window.__showDiagnostic("JavaScript Error", message);
      }
      window.__previewReport("errored", message);
    });
  </script>""" % {"source": PREVIEW_MESSAGE_SOURCE}

APP_SCRIPT_TEMPLATE = """  <script type="text/babel" data-presets="env,react">
    class PreviewErrorBoundary extends React.Component {
      constructor(props) {
        super(props);
        this.state = { hasError: false, error: null };
      }

      static getDerivedStateFromError(error) {
        return { hasError: true, error };
      }

      componentDidCatch(error) {
        window.__previewReport("errored", error && error.message);
      }

      render() {
        if (this.state.hasError) {
          return (
            <div style={{ padding: '20px', margin: '20px', border: '1px solid #f56565', borderRadius: '5px', backgroundColor: '#fff5f5', color: '#c53030' }}>
              <h2 style={{ marginTop: 0 }}>Rendering Error</h2>
              <p>{(this.state.error && this.state.error.message) || 'An unknown error occurred'}</p>
            </div>
          );
        }
        return this.props.children;
      }
    }

    try {
__SCRIPTS__

      const __entry = (typeof App !== 'undefined') ? App : (window.App || null);

      if (__entry) {
        const __root = ReactDOM.createRoot(document.getElementById('root'));
        __root.render(
          <PreviewErrorBoundary>
            {React.createElement(__entry)}
          </PreviewErrorBoundary>
        );
        window.__previewReport("ready");
      } else {
        window.__showDiagnostic("No App component found", "Make sure you have an exported App component.", "info");
        window.__previewReport("errored", "No App component found");
      }
    } catch (err) {
      window.__showDiagnostic("JavaScript Error", (err && err.message) || "Unknown error");
      window.__previewReport("errored", (err && err.message) || "Unknown error");
      console.error("Runtime error:", err);
    }
  </script>
"""

# Module syntax has no meaning inside a classic <script>; these are heuristics,
# not a parser.
IMPORT_STATEMENT = re.compile(
    r"^[ \t]*import\s+(?:[^;'\"]*?\s+from\s+)?['\"][^'\"]+['\"][ \t]*;?[ \t]*$",
    re.MULTILINE,
)
EXPORT_DEFAULT_NAME = re.compile(r"^[ \t]*export\s+default\s+[A-Za-z_$][\w$]*[ \t]*;?[ \t]*$", re.MULTILINE)
EXPORT_KEYWORD = re.compile(
    r"^([ \t]*)export\s+(?:default\s+)?(?=(?:async\s+)?function\b|class\b|const\b|let\b|var\b)",
    re.MULTILINE,
)

COMPONENT_DECLARATION = re.compile(
    r"function\s+(\w+)\s*\([^)]*\)\s*{|const\s+(\w+)\s*=\s*\([^)]*\)\s*=>"
)

ROOT_ELEMENT = re.compile(r"""(?<![\w-])id\s*=\s*["']?root["'\s>/]""", re.IGNORECASE)
BODY_OPEN = re.compile(r"<body\b[^>]*>", re.IGNORECASE)
HTML_OPEN = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
DOCTYPE = re.compile(r"<!doctype[^>]*>", re.IGNORECASE)


class FilePartition(NamedTuple):
    html_entry: Optional[SourceFile]
    styles: List[SourceFile]
    scripts: List[SourceFile]


def partition_files(files: Sequence[SourceFile]) -> FilePartition:
    html_entry = None
    styles: List[SourceFile] = []
    scripts: List[SourceFile] = []

    for source in files:
        name = (source.name or "").lower()
        if name.endswith(".html"):
            if html_entry is None:
                html_entry = source
        elif name.endswith(".css"):
            styles.append(source)
        elif name.endswith(SCRIPT_SUFFIXES):
            scripts.append(source)

    return FilePartition(html_entry, styles, scripts)


def build_skeleton(project_name: Optional[str] = None) -> str:
    title = html.escape(project_name or DEFAULT_TITLE)
    return SKELETON_TEMPLATE.format(title=title)


def strip_module_syntax(source: str) -> str:
    source = IMPORT_STATEMENT.sub("", source)
    source = EXPORT_DEFAULT_NAME.sub("", source)
    return EXPORT_KEYWORD.sub(r"\1", source)


def find_entry_component(source: str) -> Optional[str]:
    match = COMPONENT_DECLARATION.search(source or "")
    if not match:
        return None
    return match.group(1) or match.group(2)


def _find_first(text: str, tag: str) -> int:
    match = re.search(re.escape(tag), text, re.IGNORECASE)
    return match.start() if match else -1


def _find_last(text: str, tag: str) -> int:
    position = -1
    for match in re.finditer(re.escape(tag), text, re.IGNORECASE):
        position = match.start()
    return position


def _strip_document_tags(fragment: str) -> str:
    fragment = DOCTYPE.sub("", fragment)
    fragment = HTML_OPEN.sub("", fragment)
    return re.sub(r"</html\s*>", "", fragment, flags=re.IGNORECASE)


def ensure_document_structure(document: str, project_name: Optional[str] = None) -> str:
    """
    Repair an HTML entry file so it has <html>, <head>, <body> and a #root
    mount point. Anything we cannot make sense of ends up inside the body
    of a synthesized skeleton.
    """
    has_head_close = _find_first(document, "</head>") != -1
    has_body_open = BODY_OPEN.search(document) is not None

    if not has_body_open:
        if has_head_close:
            cut = _find_first(document, "</head>") + len("</head>")
            head_part, rest = document[:cut], _strip_document_tags(document[cut:])
            document = f"{head_part}\n<body>\n{rest.strip()}\n</body>\n</html>"
        else:
            fragment = _strip_document_tags(document).strip()
            skeleton = build_skeleton(project_name)
            cut = _find_last(skeleton, "</body>")
            document = skeleton[:cut] + (f"  {fragment}\n" if fragment else "") + skeleton[cut:]
    elif not has_head_close:
        body_tag = BODY_OPEN.search(document)
        title = html.escape(project_name or DEFAULT_TITLE)
        document = (
            document[: body_tag.start()]
            + f"<head>\n  <title>{title}</title>\n</head>\n"
            + document[body_tag.start():]
        )

    if _find_last(document, "</body>") == -1:
        html_close = _find_last(document, "</html>")
        if html_close == -1:
            document = document + "\n</body>"
        else:
            document = document[:html_close] + "</body>\n" + document[html_close:]

    if HTML_OPEN.search(document) is None:
        doctype = DOCTYPE.search(document)
        if doctype:
            document = document[: doctype.end()] + "\n<html>" + document[doctype.end():]
        else:
            document = "<!DOCTYPE html>\n<html>\n" + document
    if _find_last(document, "</html>") == -1:
        document = document + "\n</html>"

    if ROOT_ELEMENT.search(document) is None:
        body_tag = BODY_OPEN.search(document)
        document = document[: body_tag.end()] + '\n  <div id="root"></div>' + document[body_tag.end():]

    return document


def _head_injection(css: str) -> str:
    tags = "\n".join(f'  <script src="{url}"></script>' for url in RUNTIME_LIBRARIES)
    return f"{tags}\n{ERROR_HANDLER_SCRIPT}\n  <style>{css}</style>\n"


def _body_injection(scripts: str) -> str:
    return APP_SCRIPT_TEMPLATE.replace("__SCRIPTS__", scripts)


def compose_document(files: Sequence[SourceFile], project_name: Optional[str] = None) -> str:
    """
    Build one self-contained HTML document out of a project's files.

    The first .html file is the skeleton (a minimal one is synthesized when
    there is none), runtime libraries and all CSS go before </head>, and all
    script files run inside a try/catch before </body>. Whatever the input,
    the result is an HTML document with a #root element.
    """
    partition = partition_files(files)

    css = "\n".join(clean_content(f.content) for f in partition.styles)
    scripts = "\n".join(strip_module_syntax(clean_content(f.content)) for f in partition.scripts)

    if partition.html_entry is not None:
        skeleton = clean_content(partition.html_entry.content) or ""
        document = ensure_document_structure(skeleton, project_name)
    else:
        document = build_skeleton(project_name)

    head_close = _find_first(document, "</head>")
    document = document[:head_close] + _head_injection(css) + document[head_close:]

    body_close = _find_last(document, "</body>")
    document = document[:body_close] + _body_injection(scripts) + document[body_close:]

    logger.debug(
        "Composed preview: html=%s styles=%d scripts=%d size=%d",
        partition.html_entry.name if partition.html_entry else None,
        len(partition.styles),
        len(partition.scripts),
        len(document),
    )
    return document


def _entry_file_name(scripts: Sequence[SourceFile]) -> Optional[str]:
    for source in scripts:
        if (source.name or "").lower() in ENTRY_FILE_NAMES:
            return source.name
    return None


def build_fallback_preview(files: Sequence[SourceFile], project_name: Optional[str] = None) -> FallbackPreview:
    """Static app-structure view used when the sandbox cannot start."""
    partition = partition_files(files)

    excerpts = []
    for source in partition.scripts[:FALLBACK_SCRIPT_LIMIT]:
        content = clean_content(source.content) or ""
        excerpts.append(
            FileExcerpt(
                name=source.name,
                excerpt=content[:EXCERPT_LENGTH],
                component=find_entry_component(content),
            )
        )

    return FallbackPreview(
        title=project_name or DEFAULT_TITLE,
        entry_file=_entry_file_name(partition.scripts),
        scripts=excerpts,
        styles=[f.name for f in partition.styles],
    )


def render_fallback_html(preview: FallbackPreview) -> str:
    cards = []
    for item in preview.scripts:
        component = (
            f'<div class="component">{html.escape(item.component)}</div>' if item.component else ""
        )
        cards.append(
            '    <div class="card">\n'
            f'      <div class="name">{html.escape(item.name)}</div>\n'
            f"      {component}\n"
            f"      <pre>{html.escape(item.excerpt)}...</pre>\n"
            "    </div>"
        )

    styles = ", ".join(html.escape(name) for name in preview.styles) or "none"
    body = "\n".join(cards) if cards else '    <p class="empty">No script files yet.</p>'

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <title>{html.escape(preview.title)}</title>
  <style>
    body {{ font-family: sans-serif; padding: 1rem; }}
    .grid {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(280px, 1fr)); gap: 1rem; }}
    .card {{ padding: 0.75rem; background: #f9fafb; border-radius: 6px; }}
    .name {{ font-weight: 600; color: #2563eb; margin-bottom: 0.5rem; }}
    .component {{ font-size: 0.75rem; color: #6b7280; }}
    pre {{ font-size: 0.75rem; max-height: 100px; overflow: hidden; white-space: pre-wrap; }}
    .notice {{ text-align: center; color: #6b7280; font-size: 0.875rem; }}
  </style>
</head>
<body>
  <div id="root">
  <h3>App Structure Preview</h3>
  <div class="grid">
{body}
  </div>
  <p>Styles: {styles}</p>
  <p class="notice">{html.escape(preview.notice)}</p>
  </div>
</body>
</html>"""


class RenderContext:
    """
    Everything one render cycle needs: an immutable snapshot of the files,
    the project it belongs to, and the document derived from them. Build a
    new context for every change; nothing is shared between cycles.
    """

    def __init__(self, project_id: int, files: Sequence[SourceFile], project_name: Optional[str] = None) -> None:
        self.project_id = project_id
        self.project_name = project_name
        self.files: Tuple[SourceFile, ...] = tuple(f.model_copy() for f in files)
        self._document: Optional[str] = None

    @property
    def document(self) -> str:
        if self._document is None:
            self._document = compose_document(self.files, self.project_name)
        return self._document

    def fallback(self) -> FallbackPreview:
        return build_fallback_preview(self.files, self.project_name)
