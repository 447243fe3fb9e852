"""A small markdown parser for text that is still being streamed.

:func:`parse` never raises and keeps no state between calls: the text of
an assistant message is re-parsed from scratch on every refresh, so a
fence or marker left open at the end of the buffer must still produce a
well-formed tree.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Union
from urllib.parse import urljoin, urlparse

# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass
class Text:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class Strong:
    children: list[Inline]
    type: str = field(default="strong", init=False)


@dataclass
class Emphasis:
    children: list[Inline]
    type: str = field(default="em", init=False)


@dataclass
class InlineCode:
    text: str
    type: str = field(default="code", init=False)


@dataclass
class Link:
    href: str
    children: list[Inline]
    type: str = field(default="link", init=False)


Inline = Union[Text, Strong, Emphasis, InlineCode, Link]


@dataclass
class Heading:
    level: int
    children: list[Inline]
    type: str = field(default="heading", init=False)


@dataclass
class Paragraph:
    children: list[Inline]
    type: str = field(default="paragraph", init=False)


@dataclass
class CodeBlock:
    language: str | None
    content: str
    type: str = field(default="code", init=False)


@dataclass
class Blockquote:
    children: list[Block]
    type: str = field(default="blockquote", init=False)


@dataclass
class ListItem:
    checked: bool | None
    children: list[Inline]
    ordinal: int | None = None


@dataclass
class ListBlock:
    ordered: bool
    items: list[ListItem]
    type: str = field(default="list", init=False)


@dataclass
class Table:
    headers: list[list[Inline]]
    rows: list[list[list[Inline]]]
    type: str = field(default="table", init=False)


Block = Union[Heading, Paragraph, CodeBlock, Blockquote, ListBlock, Table]


def to_dict(nodes: list[Block] | list[Inline]) -> list[dict[str, Any]]:
    """Serialise a parsed tree to plain dicts."""
    return [asdict(node) for node in nodes]


# ---------------------------------------------------------------------------
# Block grammar
# ---------------------------------------------------------------------------

CODE_FENCE_RE = re.compile(r"^\s*```([a-zA-Z0-9_-]+)?\s*$")
HEADING_RE = re.compile(r"^\s{0,3}(#{1,6})\s+(.+)$")
BLOCKQUOTE_RE = re.compile(r"^\s*>\s?(.*)$")
TABLE_SEPARATOR_RE = re.compile(
    r"^\s*\|?\s*:?-{3,}:?(?:\s*\|\s*:?-{3,}:?)*\s*\|?\s*$"
)
# Ordinals longer than nine digits are not list markers.
ORDERED_LIST_RE = re.compile(r"^\s*(\d{1,9})\.\s+(.+)$")
UNORDERED_LIST_RE = re.compile(r"^\s*[-*+]\s+(.+)$")
TASK_MARKER_RE = re.compile(r"^\[([ xX])\]\s+(.+)$")

MAX_QUOTE_DEPTH = 16

SAFE_SCHEMES = {"http", "https", "mailto"}
_NEUTRAL_BASE = "https://example.com"


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_table_start(lines: list[str], index: int) -> bool:
    if index + 1 >= len(lines):
        return False
    return "|" in lines[index] and bool(TABLE_SEPARATOR_RE.match(lines[index + 1]))


def _starts_block(lines: list[str], index: int) -> bool:
    line = lines[index]
    return bool(
        CODE_FENCE_RE.match(line)
        or HEADING_RE.match(line)
        or BLOCKQUOTE_RE.match(line)
        or ORDERED_LIST_RE.match(line)
        or UNORDERED_LIST_RE.match(line)
        or _is_table_start(lines, index)
    )


def _table_cells(line: str) -> list[list[Inline]]:
    trimmed = line.strip()
    if trimmed.startswith("|"):
        trimmed = trimmed[1:]
    if trimmed.endswith("|"):
        trimmed = trimmed[:-1]
    return [parse_inlines(cell.strip()) for cell in trimmed.split("|")]


def _list_item(body: str, ordinal: int | None) -> ListItem:
    task = TASK_MARKER_RE.match(body)
    if task:
        return ListItem(
            checked=task.group(1).lower() == "x",
            children=parse_inlines(task.group(2).strip()),
            ordinal=ordinal,
        )
    return ListItem(checked=None, children=parse_inlines(body.strip()), ordinal=ordinal)


def parse(text: str) -> list[Block]:
    """Parse *text* into a list of block nodes."""
    lines = text.replace("\r\n", "\n").split("\n")
    return _parse_blocks(lines, depth=0)


def _parse_blocks(lines: list[str], depth: int) -> list[Block]:
    blocks: list[Block] = []
    i = 0
    while i < len(lines):
        line = lines[i]

        if _is_blank(line):
            i += 1
            continue

        fence = CODE_FENCE_RE.match(line)
        if fence:
            code_lines = []
            i += 1
            while i < len(lines) and not CODE_FENCE_RE.match(lines[i]):
                code_lines.append(lines[i])
                i += 1
            # Skip the closing fence; an open fence runs to end of input.
            i += 1
            blocks.append(CodeBlock(language=fence.group(1), content="\n".join(code_lines)))
            continue

        heading = HEADING_RE.match(line)
        if heading:
            blocks.append(Heading(
                level=len(heading.group(1)),
                children=parse_inlines(heading.group(2).strip()),
            ))
            i += 1
            continue

        if _is_table_start(lines, i):
            headers = _table_cells(line)
            i += 2
            rows = []
            while i < len(lines) and "|" in lines[i] and not _is_blank(lines[i]):
                rows.append(_table_cells(lines[i]))
                i += 1
            blocks.append(Table(headers=headers, rows=rows))
            continue

        if BLOCKQUOTE_RE.match(line):
            quoted = []
            while i < len(lines):
                match = BLOCKQUOTE_RE.match(lines[i])
                if not match:
                    break
                quoted.append(match.group(1))
                i += 1
            if depth >= MAX_QUOTE_DEPTH:
                children: list[Block] = [Paragraph(children=parse_inlines("\n".join(quoted)))]
            else:
                children = _parse_blocks(quoted, depth + 1)
            blocks.append(Blockquote(children=children))
            continue

        ordered = ORDERED_LIST_RE.match(line) is not None
        if ordered or UNORDERED_LIST_RE.match(line):
            items = []
            while i < len(lines) and not _is_blank(lines[i]):
                if ordered:
                    match = ORDERED_LIST_RE.match(lines[i])
                    if not match:
                        break
                    items.append(_list_item(match.group(2), int(match.group(1))))
                else:
                    match = UNORDERED_LIST_RE.match(lines[i])
                    if not match:
                        break
                    items.append(_list_item(match.group(1), None))
                i += 1
            blocks.append(ListBlock(ordered=ordered, items=items))
            continue

        paragraph = [line]
        i += 1
        while i < len(lines) and not _is_blank(lines[i]) and not _starts_block(lines, i):
            paragraph.append(lines[i])
            i += 1
        blocks.append(Paragraph(children=parse_inlines("\n".join(paragraph))))

    return blocks


# ---------------------------------------------------------------------------
# Inline grammar
# ---------------------------------------------------------------------------


def sanitize_href(raw_href: str) -> str | None:
    """Return the trimmed href if it is safe to link to, else ``None``.

    Site-relative paths and anything resolving to http(s) or mailto are
    allowed; every other scheme is rejected.
    """
    href = raw_href.strip()
    if not href:
        return None
    if href.startswith("/"):
        return href
    try:
        scheme = urlparse(urljoin(_NEUTRAL_BASE, href)).scheme
    except ValueError:
        return None
    return href if scheme.lower() in SAFE_SCHEMES else None


def _push_text(nodes: list[Inline], text: str) -> None:
    if not text:
        return
    if nodes and isinstance(nodes[-1], Text):
        nodes[-1].text += text
        return
    nodes.append(Text(text=text))


def _extend(nodes: list[Inline], children: list[Inline]) -> None:
    for child in children:
        if isinstance(child, Text):
            _push_text(nodes, child.text)
        else:
            nodes.append(child)


def parse_inlines(source: str) -> list[Inline]:
    """Scan *source* left to right into inline nodes.

    Precedence: code span, ``**strong**``, ``*em*``/``_em_``, links.
    A marker without a closer is literal text.
    """
    nodes: list[Inline] = []
    cursor = 0
    length = len(source)

    while cursor < length:
        char = source[cursor]

        if char == "`":
            closing = source.find("`", cursor + 1)
            if closing != -1:
                nodes.append(InlineCode(text=source[cursor + 1:closing]))
                cursor = closing + 1
                continue
            _push_text(nodes, char)
            cursor += 1
            continue

        if source.startswith("**", cursor):
            closing = source.find("**", cursor + 2)
            if closing != -1:
                nodes.append(Strong(children=parse_inlines(source[cursor + 2:closing])))
                cursor = closing + 2
                continue
            _push_text(nodes, char)
            cursor += 1
            continue

        if char in "*_":
            closing = source.find(char, cursor + 1)
            if closing != -1:
                nodes.append(Emphasis(children=parse_inlines(source[cursor + 1:closing])))
                cursor = closing + 1
                continue

        if char == "[":
            label_end = source.find("]", cursor + 1)
            if label_end != -1 and source.startswith("(", label_end + 1):
                href_end = source.find(")", label_end + 2)
                if href_end != -1:
                    label = parse_inlines(source[cursor + 1:label_end])
                    href = sanitize_href(source[label_end + 2:href_end])
                    if href is not None:
                        nodes.append(Link(href=href, children=label))
                    else:
                        _extend(nodes, label)
                    cursor = href_end + 1
                    continue

        _push_text(nodes, char)
        cursor += 1

    return nodes
