"""
Heuristic block reconstruction from rendered hypertext.

Word-processor and Markdown output cannot consume hypertext directly, so
rendered content is flattened into a list of text blocks and each block
is classified by textual cues alone:

    "# Title"              -> HEADING_1 (one level per leading ``#``, max 3)
    "- item" / "1. item"   -> LIST_ITEM
    "SHORT ALL CAPS"       -> HEADING_2 (< 100 chars, contains letters)
    anything else          -> PARAGRAPH

The flattening step writes hypertext headings and list items back as
Markdown-style markers, so the same classifier serves hypertext,
Markdown and structured sources. Layout fidelity is best-effort.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from html.parser import HTMLParser
from typing import List, Optional


class BlockKind(str, Enum):
    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    LIST_ITEM = "list_item"
    PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class Block:
    kind: BlockKind
    text: str


_HEADING_MARKER = re.compile(r"^(#{1,6})\s+")
_LIST_MARKER = re.compile(r"^(?:[-*•]|\d+[.)])\s+")

_HEADING_LEVELS = {
    1: BlockKind.HEADING_1,
    2: BlockKind.HEADING_2,
}

ALL_CAPS_HEADING_MAX_LENGTH = 100


def classify_block(text: str) -> BlockKind:
    """Classify one flattened text block. Pure function of its input."""
    stripped = text.strip()

    heading = _HEADING_MARKER.match(stripped)
    if heading:
        return _HEADING_LEVELS.get(len(heading.group(1)), BlockKind.HEADING_3)

    if _LIST_MARKER.match(stripped):
        return BlockKind.LIST_ITEM

    if (
        len(stripped) < ALL_CAPS_HEADING_MAX_LENGTH
        and any(ch.isalpha() for ch in stripped)
        and stripped == stripped.upper()
    ):
        return BlockKind.HEADING_2

    return BlockKind.PARAGRAPH


def strip_marker(text: str, kind: BlockKind) -> str:
    """Remove the leading marker that produced ``kind``, if any."""
    stripped = text.strip()
    if kind in (BlockKind.HEADING_1, BlockKind.HEADING_2, BlockKind.HEADING_3):
        return _HEADING_MARKER.sub("", stripped, count=1)
    if kind is BlockKind.LIST_ITEM:
        return _LIST_MARKER.sub("", stripped, count=1)
    return stripped


# ----------------------------------------------------------------------
# Hypertext flattening
# ----------------------------------------------------------------------

_BLOCK_TAGS = {
    "p", "div", "section", "article", "header", "footer", "blockquote",
    "pre", "tr", "li", "h1", "h2", "h3", "h4", "h5", "h6", "table",
    "ul", "ol", "dl", "dt", "dd", "hr",
}
_SKIPPED_TAGS = {"script", "style", "head", "title"}


class _TextBlockParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.blocks: List[str] = []
        self._buffer: List[str] = []
        self._prefix = ""
        self._skip_depth = 0
        self._lists: List[List[int]] = []  # [ordered, counter]
        self._cells: Optional[List[str]] = None

    # -- helpers -------------------------------------------------------

    def _flush(self) -> None:
        text = re.sub(r"\s+", " ", "".join(self._buffer)).strip()
        self._buffer = []
        if text:
            self.blocks.append(self._prefix + text)
            self._prefix = ""

    # -- HTMLParser hooks -----------------------------------------------

    def handle_starttag(self, tag, attrs):
        if tag in _SKIPPED_TAGS:
            self._skip_depth += 1
            return
        if tag == "br":
            self._flush()
            return
        if tag in ("td", "th"):
            if self._cells is not None:
                self._cells.append("".join(self._buffer))
                self._buffer = []
            return
        if tag not in _BLOCK_TAGS:
            return

        self._flush()
        if tag in ("ul", "ol"):
            self._lists.append([tag == "ol", 0])
        elif tag == "li":
            if self._lists and self._lists[-1][0]:
                self._lists[-1][1] += 1
                self._prefix = f"{self._lists[-1][1]}. "
            else:
                self._prefix = "- "
        elif tag in ("h1", "h2", "h3", "h4", "h5", "h6"):
            self._prefix = "#" * int(tag[1]) + " "
        elif tag == "tr":
            self._cells = []

    def handle_endtag(self, tag):
        if tag in _SKIPPED_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if tag in ("td", "th"):
            if self._cells is not None:
                self._cells.append("".join(self._buffer))
                self._buffer = []
            return
        if tag == "tr" and self._cells is not None:
            cells = [re.sub(r"\s+", " ", c).strip() for c in self._cells]
            self._buffer = [" | ".join(c for c in cells if c)]
            self._cells = None
            self._flush()
            return
        if tag not in _BLOCK_TAGS:
            return

        self._flush()
        if tag in ("ul", "ol") and self._lists:
            self._lists.pop()

    def handle_data(self, data):
        if self._skip_depth:
            return
        self._buffer.append(data)

    def close(self):
        super().close()
        self._flush()


def html_to_text_blocks(markup: str) -> List[str]:
    """Flatten hypertext into marker-prefixed text blocks, in document order."""
    parser = _TextBlockParser()
    parser.feed(markup)
    parser.close()
    return parser.blocks


def reconstruct_blocks(markup: str) -> List[Block]:
    """Flatten and classify rendered hypertext."""
    blocks = []
    for text in html_to_text_blocks(markup):
        kind = classify_block(text)
        blocks.append(Block(kind=kind, text=strip_marker(text, kind)))
    return blocks


def blocks_to_markdown(blocks: List[Block]) -> str:
    """Serialize classified blocks as Markdown, one blank line apart."""
    lines: List[str] = []
    previous: Optional[BlockKind] = None
    for block in blocks:
        match block.kind:
            case BlockKind.HEADING_1:
                line = f"# {block.text}"
            case BlockKind.HEADING_2:
                line = f"## {block.text}"
            case BlockKind.HEADING_3:
                line = f"### {block.text}"
            case BlockKind.LIST_ITEM:
                line = f"- {block.text}"
            case BlockKind.PARAGRAPH:
                line = block.text

        # Consecutive list items stay in one list.
        if lines and not (previous is BlockKind.LIST_ITEM and block.kind is BlockKind.LIST_ITEM):
            lines.append("")
        lines.append(line)
        previous = block.kind
    return "\n".join(lines)
