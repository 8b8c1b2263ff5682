"""
Isolated rendering for markup and front‑end languages.

HTML, CSS, React and Vue snippets are not run as processes.  Instead a
self‑contained document is built and shown in an embedded browsing context
whose sandbox allows scripts but withholds same‑origin access, so the
rendered code cannot reach the state of the page that embeds it.

Nothing is written to disk and no process is started; the "output" of a run
is the rendered document itself.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

from ..models import ExecutionMode

SANDBOX_POLICY = "allow-scripts"

REACT_VERSION = "18.3.1"
BABEL_VERSION = "7.24.7"
VUE_VERSION = "3.4.31"

REACT_SCRIPTS = (
    f"https://unpkg.com/react@{REACT_VERSION}/umd/react.development.js",
    f"https://unpkg.com/react-dom@{REACT_VERSION}/umd/react-dom.development.js",
    f"https://unpkg.com/@babel/standalone@{BABEL_VERSION}/babel.min.js",
)
VUE_SCRIPTS = (f"https://unpkg.com/vue@{VUE_VERSION}/dist/vue.global.js",)

_SCRIPT_CLOSE = re.compile(r"</(script)", re.IGNORECASE)

_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
{head}
</head>
<body>
{body}
</body>
</html>
"""


def escape_script(code: str) -> str:
    """Keep user code from closing the surrounding ``<script>`` element."""
    return _SCRIPT_CLOSE.sub(r"<\\/\1", code)


@dataclass
class RenderedDocument:
    mode: ExecutionMode
    document: str
    sandbox: str = SANDBOX_POLICY


class IsolatedRenderExecutor:
    """Build documents for the isolated‑render execution modes."""

    def render(self, mode: ExecutionMode, code: str) -> RenderedDocument:
        if mode is ExecutionMode.RENDER_REACT:
            document = self._react_document(code)
        elif mode is ExecutionMode.RENDER_VUE:
            document = self._vue_document(code)
        elif mode is ExecutionMode.RENDER_HTML:
            document = code
        else:
            raise ValueError(f"{mode.value} is not an isolated-render mode")
        return RenderedDocument(mode=mode, document=document)

    def iframe(self, rendered: RenderedDocument, frame_id: str) -> str:
        """Markup of the sandboxed frame showing ``rendered``."""
        return (
            f'<iframe id="{html.escape(frame_id, quote=True)}" '
            f'sandbox="{rendered.sandbox}" '
            f'srcdoc="{html.escape(rendered.document, quote=True)}"></iframe>'
        )

    def _react_document(self, code: str) -> str:
        head = "\n".join(f'<script crossorigin src="{src}"></script>' for src in REACT_SCRIPTS)
        body = '<div id="root"></div>\n' f'<script type="text/babel" data-presets="react">\n{escape_script(code)}\n</script>'
        return _PAGE.format(head=head, body=body)

    def _vue_document(self, code: str) -> str:
        head = "\n".join(f'<script src="{src}"></script>' for src in VUE_SCRIPTS)
        body = '<div id="app"></div>\n' f"<script>\n{escape_script(code)}\n</script>"
        return _PAGE.format(head=head, body=body)
