#!/usr/bin/env python3
"""
ABOUTME: Locates {{expression}} and {key} placeholders across fragmented runs
ABOUTME: Each placeholder records one byte-span fragment per run it touches
"""

from dataclasses import dataclass
from typing import List, Tuple

from .common import (
    EXPRESSION_CLOSE_MARKERS,
    EXPRESSION_OPEN,
    EXPRESSION_OPEN_MARKERS,
    SIMPLE_CLOSE,
    SIMPLE_OPEN,
    SYNTAX_EXPRESSION,
    SYNTAX_SIMPLE,
    Span,
)
from .errors import PartParseError
from .run_parser import Run, decode_text, split_text_segments


@dataclass(frozen=True)
class Fragment:
    """
    Part of a placeholder's literal text that lies inside one run.

    Attributes:
        run_index: Index of the owning run in the part's run list
        position: Byte span relative to the run's text start
        base: Absolute offset of the run's text start when the part was parsed
    """
    run_index: int
    position: Span
    base: int

    @property
    def absolute(self) -> Span:
        return self.position.shift(self.base)

    def get_raw(self, data: bytes) -> bytes:
        return self.absolute.slice(data)


@dataclass
class Placeholder:
    """
    A located placeholder, possibly split over several runs.

    Attributes:
        fragments: Fragments in ascending document order (at least one)
        token: Decoded literal token including its markers, e.g. "{{.name}}"
        key: Expression (Syntax A) or key (Syntax B) between the markers
        syntax: SYNTAX_EXPRESSION or SYNTAX_SIMPLE
        part_name: Archive entry the placeholder was found in
    """
    fragments: List[Fragment]
    token: str
    key: str
    syntax: str = SYNTAX_EXPRESSION
    part_name: str = ''

    def __post_init__(self):
        if not self.fragments:
            raise ValueError("placeholder needs at least one fragment")

    @property
    def start_pos(self) -> int:
        """Absolute start of the token in the part"""
        return self.fragments[0].absolute.start

    @property
    def end_pos(self) -> int:
        """Absolute end (exclusive) of the token in the part"""
        return self.fragments[-1].absolute.end

    @property
    def span(self) -> Span:
        return Span(self.start_pos, self.end_pos)

    @property
    def is_fragmented(self) -> bool:
        return len(self.fragments) > 1

    def fragment_text(self, data: bytes) -> str:
        """Concatenated decoded text of all fragments (equals token)"""
        return ''.join(decode_text(f.get_raw(data))[0] for f in self.fragments)


class _TextStream:
    """Decoded text of one run segment with per-character byte ownership"""

    def __init__(self, segment: List[Run], data: bytes, part_name: str):
        chars: List[str] = []
        # (run index, relative byte start, relative byte end, run text start)
        self.owners: List[Tuple[int, int, int, int]] = []
        for run in segment:
            raw = run.get_raw_text(data)
            try:
                text, offsets = decode_text(raw)
            except UnicodeDecodeError as e:
                raise PartParseError(f"text is not valid UTF-8: {e}", part_name,
                                     run.text_start) from e
            chars.append(text)
            base = run.text_start
            for i in range(len(text)):
                self.owners.append((run.id, offsets[i], offsets[i + 1], base))
        self.text = ''.join(chars)

    def fragments(self, start: int, end: int) -> List[Fragment]:
        """Fragments covering characters [start, end), one per run"""
        result: List[Fragment] = []
        current_run = None
        frag_start = frag_end = base = 0
        for run_index, rel_start, rel_end, run_base in self.owners[start:end]:
            if run_index != current_run:
                if current_run is not None:
                    result.append(Fragment(current_run, Span(frag_start, frag_end), base))
                current_run = run_index
                frag_start = rel_start
                base = run_base
            frag_end = rel_end
        if current_run is not None:
            result.append(Fragment(current_run, Span(frag_start, frag_end), base))
        return result


def _find_marker(text: str, markers: Tuple[str, ...], pos: int) -> Tuple[int, int]:
    """Earliest (index, length) of any marker at or after pos, (-1, 0) if none"""
    best = (-1, 0)
    for marker in markers:
        index = text.find(marker, pos)
        if index >= 0 and (best[0] < 0 or index < best[0]):
            best = (index, len(marker))
    return best


def find_expression_tokens(text: str) -> List[Tuple[int, int]]:
    """
    Find {{...}} tokens in decoded text.

    Doubled typographic look-alikes ("““", "｛｛" and their closing forms)
    are accepted as markers; a lone curly quote is ordinary text. Each open
    marker pairs with the nearest following close marker; an open marker
    without one is left alone.

    Returns:
        List of (start, end) character ranges, markers included
    """
    tokens = []
    pos = 0
    while True:
        start, open_len = _find_marker(text, EXPRESSION_OPEN_MARKERS, pos)
        if start < 0:
            break
        close, close_len = _find_marker(text, EXPRESSION_CLOSE_MARKERS, start + open_len)
        if close < 0:
            break
        end = close + close_len
        tokens.append((start, end))
        pos = end
    return tokens


def find_simple_tokens(text: str) -> List[Tuple[int, int]]:
    """
    Find {key} tokens in decoded text.

    No nesting and no escaping: when several '{' precede a '}', the last one
    opens the token. Empty keys ("{}") are not placeholders.

    Returns:
        List of (start, end) character ranges, markers included
    """
    tokens = []
    pos = 0
    while True:
        start = text.find(SIMPLE_OPEN, pos)
        if start < 0:
            break
        close = text.find(SIMPLE_CLOSE, start + 1)
        if close < 0:
            break
        inner_open = text.rfind(SIMPLE_OPEN, start + 1, close)
        if inner_open >= 0:
            start = inner_open
        if close - start > 1:
            tokens.append((start, close + 1))
        pos = close + 1
    return tokens


def parse_placeholders(runs: List[Run], data: bytes, syntax: str = SYNTAX_EXPRESSION,
                       part_name: str = '') -> List[Placeholder]:
    """
    Locate all placeholders of one syntax in a part.

    Args:
        runs: Runs of the part, as produced by RunParser
        data: Raw part bytes the runs were parsed from
        syntax: SYNTAX_EXPRESSION for {{expr}}, SYNTAX_SIMPLE for {key}
        part_name: Archive entry name, recorded on each placeholder

    Returns:
        Placeholders in ascending document order
    """
    if syntax == SYNTAX_EXPRESSION:
        finder, marker_len = find_expression_tokens, len(EXPRESSION_OPEN)
    elif syntax == SYNTAX_SIMPLE:
        finder, marker_len = find_simple_tokens, len(SIMPLE_OPEN)
    else:
        raise ValueError(f"unknown placeholder syntax: {syntax}")

    placeholders: List[Placeholder] = []
    for segment in split_text_segments(runs, data):
        stream = _TextStream(segment, data, part_name)
        for start, end in finder(stream.text):
            token = stream.text[start:end]
            placeholders.append(Placeholder(
                fragments=stream.fragments(start, end),
                token=token,
                key=token[marker_len:-marker_len],
                syntax=syntax,
                part_name=part_name,
            ))
    return placeholders


def parse_template_placeholders(runs: List[Run], data: bytes,
                                part_name: str = '') -> List[Placeholder]:
    return parse_placeholders(runs, data, SYNTAX_EXPRESSION, part_name)


def parse_simple_placeholders(runs: List[Run], data: bytes,
                              part_name: str = '') -> List[Placeholder]:
    return parse_placeholders(runs, data, SYNTAX_SIMPLE, part_name)
