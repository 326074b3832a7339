"""Docstring annotation blocks.

Splits a raw docstring into prose, ``@tag`` entries and the trailing
``<code>: <text>`` status-description list. Tag text may continue on the
following lines until a blank line, the next tag or a status line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re

from openapi_extractor.annotations.grammar import STATUS_NAMESPACES

TAG_RE = re.compile(r"^@([A-Za-z][\w-]*)\b\s*(.*)$")
STATUS_LINE_RE = re.compile(
    rf"^(\d{{3}}|(?:{'|'.join(sorted(STATUS_NAMESPACES))})\.\w+):(?:\s+(.*))?$"
)


@dataclass
class Tag:
    """One ``@name text`` entry."""

    name: str
    text: str
    line: int


@dataclass
class StatusLine:
    """One ``<code>: <text>`` entry."""

    token: str
    text: str
    line: int


@dataclass
class DocBlock:
    """Parsed docstring."""

    summary: str = ""
    description: str = ""
    tags: list[Tag] = field(default_factory=list)
    status_lines: list[StatusLine] = field(default_factory=list)

    def tagged(self, *names: str) -> list[Tag]:
        return [tag for tag in self.tags if tag.name in names]

    def has_tag(self, name: str) -> bool:
        return any(tag.name == name for tag in self.tags)


def parse_docblock(raw: str | None, first_line: int = 1) -> DocBlock:
    """Parse a raw docstring.

    Args:
        raw: Docstring text as written (not cleaned)
        first_line: Source line the docstring starts on

    Returns:
        DocBlock with absolute line numbers
    """
    block = DocBlock()
    if not raw:
        return block

    prose: list[list[str]] = [[]]
    current: Tag | StatusLine | None = None
    seen_tag = False

    for offset, raw_line in enumerate(raw.splitlines()):
        line = raw_line.strip()
        lineno = first_line + offset

        if not line:
            current = None
            if not seen_tag and prose[-1]:
                prose.append([])
            continue

        status_match = STATUS_LINE_RE.match(line)
        if status_match:
            current = StatusLine(status_match.group(1), (status_match.group(2) or "").strip(), lineno)
            block.status_lines.append(current)
            continue

        tag_match = TAG_RE.match(line)
        if tag_match:
            seen_tag = True
            current = Tag(tag_match.group(1), tag_match.group(2).strip(), lineno)
            block.tags.append(current)
            continue

        if current is not None:
            current.text = f"{current.text} {line}".strip()
        elif not seen_tag:
            prose[-1].append(line)

    paragraphs = [" ".join(lines) for lines in prose if lines]
    if paragraphs:
        block.summary = paragraphs[0]
        block.description = "\n\n".join(paragraphs[1:])
    return block
