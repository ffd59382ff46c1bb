"""Report renderers."""

from .json_renderer import parse_report, render_json
from .markdown_renderer import render_markdown
