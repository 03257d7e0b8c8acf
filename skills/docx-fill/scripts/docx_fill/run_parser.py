#!/usr/bin/env python3
"""
ABOUTME: Byte-level scanner that locates <w:r> runs and their <w:t> text nodes
ABOUTME: Positions always refer to raw, undecoded part bytes
"""

import re
from dataclasses import dataclass
from html import unescape
from typing import Iterator, List, Optional, Tuple

from .common import Span, TagPair
from .errors import PartParseError


RUN_TAG = b'w:r'
TEXT_TAG = b'w:t'

# Run content that renders between text nodes; a placeholder never spans it
CONTENT_TAGS = frozenset({
    b'w:tab', b'w:ptab', b'w:br', b'w:cr', b'w:sym',
    b'w:noBreakHyphen', b'w:softHyphen',
    b'w:drawing', b'w:object', b'w:pict',
    b'w:fldChar', b'w:instrText',
    b'w:footnoteReference', b'w:endnoteReference', b'w:commentReference',
})

# Markup constructs the scanner steps over without interpreting
_SKIPPED_PATTERN = re.compile(
    rb'<!--.*?-->|<!\[CDATA\[.*?\]\]>|<\?.*?\?>|<![A-Za-z][^>]*>',
    re.DOTALL,
)

# Element tags; attribute values may legally contain '>'
_TAG_PATTERN = re.compile(
    rb'<(/?)([A-Za-z_][\w.\-]*(?::[A-Za-z_][\w.\-]*)?)'
    rb'((?:"[^"]*"|\'[^\']*\'|[^\'">])*)>'
)

_ENTITY_PATTERN = re.compile(r'&(?:#[0-9]+|#x[0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);')

TAG_OPEN = 'open'
TAG_CLOSE = 'close'
TAG_EMPTY = 'empty'


@dataclass(frozen=True)
class Tag:
    """One element tag found by the scanner"""
    kind: str
    name: bytes
    span: Span


@dataclass(frozen=True)
class Run:
    """
    Parsed representation of one <w:r> element.

    A run holding several text nodes is reported as consecutive Run records
    (one per text node) that share open_tag and close_tag.

    Attributes:
        id: Index of this record in the part's run list
        open_tag: Span of <w:r ...> (or of <w:r/>)
        close_tag: Span of </w:r>, None for a self-closing run
        text: Tag spans of the text node, None when the run carries no text
    """
    id: int
    open_tag: Span
    close_tag: Optional[Span]
    text: Optional[TagPair] = None

    @property
    def has_text(self) -> bool:
        return self.text is not None

    @property
    def text_start(self) -> int:
        """Absolute offset where the raw text content begins"""
        if self.text is None:
            raise ValueError(f"run {self.id} has no text node")
        return self.text.open_tag.end

    def get_raw_text(self, data: bytes) -> bytes:
        if self.text is None:
            return b''
        return self.text.content.slice(data)

    def get_text(self, data: bytes) -> str:
        """Decoded text of the run, entities resolved"""
        text, _ = decode_text(self.get_raw_text(data))
        return text


def iter_tags(data: bytes, start: int = 0, end: Optional[int] = None,
              part_name: Optional[str] = None) -> Iterator[Tag]:
    """
    Yield element tags in data[start:end] in document order.

    Comments, CDATA sections, processing instructions and declarations are
    skipped. Text between tags is not inspected.

    Raises:
        PartParseError: If a '<' starts a tag or comment that never ends
    """
    if end is None:
        end = len(data)
    pos = start
    while True:
        lt = data.find(b'<', pos, end)
        if lt < 0:
            return
        skipped = _SKIPPED_PATTERN.match(data, lt, end)
        if skipped:
            pos = skipped.end()
            continue
        match = _TAG_PATTERN.match(data, lt, end)
        if not match:
            raise PartParseError("unterminated tag", part_name, lt)
        closing, name, attrs = match.group(1), match.group(2), match.group(3)
        span = Span(match.start(), match.end())
        if closing:
            yield Tag(TAG_CLOSE, name, span)
        elif attrs.rstrip().endswith(b'/'):
            yield Tag(TAG_EMPTY, name, span)
        else:
            yield Tag(TAG_OPEN, name, span)
        pos = match.end()


def decode_text(raw: bytes) -> Tuple[str, List[int]]:
    """
    Decode raw text-node bytes and map every character back to its bytes.

    Args:
        raw: Undecoded UTF-8 content of a <w:t> element

    Returns:
        Tuple of (text, offsets) where offsets[i] is the byte offset (relative
        to raw) at which character i starts, and offsets[len(text)] == len(raw).
        A character produced by an entity such as &amp; maps to the entity start.
    """
    source = raw.decode('utf-8')
    chars: List[str] = []
    offsets: List[int] = []
    byte_pos = 0
    pos = 0

    def add_plain(chunk: str, byte_pos: int) -> int:
        for ch in chunk:
            chars.append(ch)
            offsets.append(byte_pos)
            byte_pos += len(ch.encode('utf-8'))
        return byte_pos

    for match in _ENTITY_PATTERN.finditer(source):
        entity = match.group(0)
        decoded = unescape(entity)
        if decoded == entity or len(decoded) != 1:
            # Unknown entity, keep literally
            continue
        byte_pos = add_plain(source[pos:match.start()], byte_pos)
        chars.append(decoded)
        offsets.append(byte_pos)
        byte_pos += len(entity)
        pos = match.end()
    byte_pos = add_plain(source[pos:], byte_pos)
    offsets.append(byte_pos)
    return ''.join(chars), offsets


class RunParser:
    """
    Scans one XML part for runs and their text nodes.

    Runs are tracked on a stack so that runs nested inside drawings or text
    boxes are attributed correctly. The resulting list is ordered by the
    position of each record's text node (or run tag, for runs without text).
    """

    def __init__(self, data: bytes, part_name: Optional[str] = None):
        self.data = data
        self.part_name = part_name
        self._runs: Optional[List[Run]] = None

    @property
    def runs(self) -> List[Run]:
        if self._runs is None:
            self.execute()
        return self._runs

    def execute(self) -> List[Run]:
        """
        Parse the part.

        Returns:
            Ordered list of Run records

        Raises:
            PartParseError: On unterminated tags or malformed run/text nesting
        """
        # Each stack entry: [run open tag span, pending text open span, texts]
        stack: List[list] = []
        # (sort key, open tag, close tag, text pair)
        found: List[Tuple[int, Span, Optional[Span], Optional[TagPair]]] = []

        for tag in iter_tags(self.data, part_name=self.part_name):
            if tag.name == RUN_TAG:
                self._handle_run_tag(tag, stack, found)
            elif tag.name == TEXT_TAG:
                self._handle_text_tag(tag, stack)

        if stack:
            open_tag = stack[-1][0]
            raise PartParseError("run is never closed", self.part_name, open_tag.start)

        found.sort(key=lambda entry: entry[0])
        self._runs = [
            Run(id=index, open_tag=open_tag, close_tag=close_tag, text=text)
            for index, (_, open_tag, close_tag, text) in enumerate(found)
        ]
        return self._runs

    def _handle_run_tag(self, tag: Tag, stack: List[list], found: list):
        if tag.kind == TAG_OPEN:
            stack.append([tag.span, None, []])
        elif tag.kind == TAG_EMPTY:
            found.append((tag.span.start, tag.span, None, None))
        else:
            if not stack:
                raise PartParseError("</w:r> without an open run", self.part_name, tag.span.start)
            open_tag, pending_text, texts = stack.pop()
            if pending_text is not None:
                raise PartParseError("run closed while its text node is open",
                                     self.part_name, tag.span.start)
            if not texts:
                found.append((open_tag.start, open_tag, tag.span, None))
            for text in texts:
                found.append((text.open_tag.start, open_tag, tag.span, text))

    def _handle_text_tag(self, tag: Tag, stack: List[list]):
        if tag.kind == TAG_CLOSE:
            if not stack or stack[-1][1] is None:
                raise PartParseError("</w:t> before <w:t>", self.part_name, tag.span.start)
            stack[-1][2].append(TagPair(open_tag=stack[-1][1], close_tag=tag.span))
            stack[-1][1] = None
            return

        if not stack:
            raise PartParseError("text node outside of a run", self.part_name, tag.span.start)
        if stack[-1][1] is not None:
            raise PartParseError("nested <w:t>", self.part_name, tag.span.start)
        if tag.kind == TAG_EMPTY:
            # <w:t/> holds an empty string
            empty_close = Span(tag.span.end, tag.span.end)
            stack[-1][2].append(TagPair(open_tag=tag.span, close_tag=empty_close))
        else:
            stack[-1][1] = tag.span


def is_joinable(data: bytes, left: Run, right: Run) -> bool:
    """
    Check if the text of two consecutive runs may be read as one stream.

    The markup between left's text and right's text must close exactly the
    text node and run, and open exactly one run and text node. Anything else
    in between has to be self-contained (w:rPr, w:proofErr, bookmarks, ...)
    and must not render content of its own (tabs, breaks, symbols, drawings,
    field characters). A paragraph, cell, hyperlink or revision boundary
    therefore separates them, as does a tab between two text nodes.
    """
    if not left.has_text or not right.has_text:
        return False
    gap_start = left.text.close_tag.start
    gap_end = right.text.open_tag.end
    if gap_end < gap_start:
        return False

    same_run = left.open_tag == right.open_tag
    expected_closes = [] if left.text.self_closing else [TEXT_TAG]
    expected_opens = [TEXT_TAG]
    if not same_run:
        expected_closes.append(RUN_TAG)
        expected_opens.insert(0, RUN_TAG)

    closes: List[bytes] = []
    opens: List[bytes] = []
    for tag in iter_tags(data, gap_start, gap_end):
        if tag.name in CONTENT_TAGS:
            return False
        if tag.kind == TAG_OPEN:
            opens.append(tag.name)
        elif tag.kind == TAG_CLOSE:
            if opens:
                if opens[-1] != tag.name:
                    return False
                opens.pop()
            else:
                closes.append(tag.name)
        elif tag.name == TEXT_TAG and tag.span.end == gap_end:
            # right is <w:t/>
            opens.append(tag.name)
    return closes == expected_closes and opens == expected_opens


def split_text_segments(runs: List[Run], data: bytes) -> List[List[Run]]:
    """
    Group text-bearing runs into segments whose text forms one logical stream.

    A run without text, or markup that is not a plain run boundary, ends the
    current segment. Placeholders never span two segments.
    """
    segments: List[List[Run]] = []
    current: List[Run] = []
    for run in runs:
        if not run.has_text:
            if current:
                segments.append(current)
                current = []
            continue
        if current and not is_joinable(data, current[-1], run):
            segments.append(current)
            current = []
        current.append(run)
    if current:
        segments.append(current)
    return segments
