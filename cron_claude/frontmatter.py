"""YAML front-matter documents (task definitions and execution logs)."""

import re
from typing import Any, Dict, Tuple

import yaml

from cron_claude.errors import TaskParseError

# Only spaces/tabs may follow the delimiters so a body's leading blank lines
# are never swallowed into the header match.
FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*\n", re.DOTALL)


def split_document(content: str, source: str = "document") -> Tuple[Dict[str, Any], str]:
    """Split a document into (header dict, body).

    The body is returned verbatim, byte for byte, because log signatures are
    computed over it.
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        raise TaskParseError(source, "missing YAML front matter")

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise TaskParseError(source, f"invalid YAML front matter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TaskParseError(source, "front matter must be a mapping")

    return data, content[match.end():]


def render_document(header: Dict[str, Any], body: str) -> str:
    """Inverse of split_document for the headers we write."""
    header_text = yaml.safe_dump(
        header, sort_keys=False, default_flow_style=False, allow_unicode=True
    )
    return f"---\n{header_text}---\n{body}"
