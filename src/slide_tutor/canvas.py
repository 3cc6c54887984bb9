"""
Canvas Module
-----------
State and HTML rendering of the side canvas (Markdown text and Mermaid diagrams).
"""

import logging
import re
from dataclasses import dataclass
from typing import List

import markdown
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MERMAID_FENCE = re.compile(r"```mermaid\s*\n(.*?)```", re.DOTALL)

# First keywords of a diagram definition, for content sent without fences
MERMAID_KEYWORDS = (
    "graph", "flowchart", "sequenceDiagram", "classDiagram", "stateDiagram",
    "stateDiagram-v2", "erDiagram", "gantt", "pie", "mindmap", "journey", "timeline",
)

MERMAID_LOADER = """<script type="module">
import mermaid from 'https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.esm.min.mjs';
mermaid.initialize({ startOnLoad: true, theme: 'neutral', securityLevel: 'loose', fontFamily: 'system-ui, sans-serif' });
</script>"""

CANVAS_STYLE = """<style>
body { font-family: system-ui, sans-serif; line-height: 1.5; color: #1f2937; }
table.canvas-table { border-collapse: collapse; width: 100%; margin: 1rem 0; }
table.canvas-table th, table.canvas-table td { border: 1px solid #d1d5db; padding: 0.5rem 1rem; }
table.canvas-table th { background: #f3f4f6; font-weight: 600; }
pre.canvas-code { background: #1f2937; color: #fff; border-radius: 6px; padding: 1rem; overflow-x: auto; }
pre.mermaid { background: transparent; text-align: center; }
img.canvas-image { max-width: 100%; height: auto; border-radius: 6px; margin: 1rem 0; }
</style>"""


@dataclass
class CanvasState:
    """Visibility and content of the canvas."""

    visible: bool = False
    content: str = ""

    def show(self, content: str) -> None:
        self.visible = True
        self.content = content

    def clear(self) -> None:
        self.visible = False
        self.content = ""


def _is_bare_diagram(content: str) -> bool:
    stripped = content.strip()
    if not stripped or "```" in stripped:
        return False
    first_word = stripped.split(None, 1)[0]
    return first_word in MERMAID_KEYWORDS


def normalize_content(content: str) -> str:
    """Wrap a diagram sent without a fence into a ```mermaid block."""
    if _is_bare_diagram(content):
        return f"```mermaid\n{content.strip()}\n```"
    return content


def extract_mermaid_blocks(content: str) -> List[str]:
    """Return the source of every Mermaid diagram in the content."""
    return [block.strip() for block in MERMAID_FENCE.findall(normalize_content(content or ""))]


def markdown_to_html(content: str) -> str:
    """
    Convert canvas Markdown to an HTML fragment.

    Fenced ``mermaid`` blocks become ``<pre class="mermaid">`` elements for
    the Mermaid loader; tables, code blocks and images get styling classes.

    Parameters
    ----------
    content : str
        Markdown text, possibly containing Mermaid fences.

    Returns
    -------
    str
        The HTML fragment.
    """
    html = markdown.markdown(normalize_content(content), extensions=['extra'])
    soup = BeautifulSoup(html, 'html.parser')

    for code in soup.find_all('code'):
        classes = code.get('class') or []
        pre = code.parent
        if pre is None or pre.name != 'pre':
            continue
        if 'language-mermaid' in classes or 'mermaid' in classes:
            diagram = soup.new_tag('pre', attrs={'class': 'mermaid'})
            diagram.string = code.get_text().strip()
            pre.replace_with(diagram)
        else:
            pre['class'] = pre.get('class', []) + ['canvas-code']

    for table in soup.find_all('table'):
        table['class'] = table.get('class', []) + ['canvas-table']

    for img in soup.find_all('img'):
        img['class'] = img.get('class', []) + ['canvas-image']

    return str(soup)


def render_canvas_html(canvas: CanvasState) -> str:
    """
    Render a complete HTML document for the canvas.

    Returns an empty string when the canvas is hidden or empty.
    """
    if not canvas.visible or not canvas.content:
        return ""

    try:
        body = markdown_to_html(canvas.content)
    except Exception as e:
        logger.error(f"Error processing markdown: {e}", exc_info=True)
        body = "<p>Error processing Markdown.</p>"

    diagrams = len(extract_mermaid_blocks(canvas.content))
    logger.info(f"Rendering canvas with {len(canvas.content)} chars and {diagrams} diagram(s)")

    loader = MERMAID_LOADER if diagrams else ""
    return f"<html><head>{CANVAS_STYLE}</head><body>{body}{loader}</body></html>"
