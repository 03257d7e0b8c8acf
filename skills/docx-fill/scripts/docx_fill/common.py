#!/usr/bin/env python3
"""
ABOUTME: Shared constants, byte-span primitives and text helpers for docx_fill
ABOUTME: Part name patterns, placeholder marker tables and XML-safe encoding
"""

import re
from dataclasses import dataclass
from html import escape


# ============================================================
# Constants
# ============================================================

# Main document body inside the docx archive
DOCUMENT_XML = "word/document.xml"

# Modifiable parts besides the body
HEADER_PATH_PATTERN = re.compile(r'^word/header[0-9]*\.xml$')
FOOTER_PATH_PATTERN = re.compile(r'^word/footer[0-9]*\.xml$')
MEDIA_PATH_PREFIX = "word/media/"

NS = {
    'w': 'http://schemas.openxmlformats.org/wordprocessingml/2006/main',
}

# Rendered by the expression evaluator for None values.
# A result containing it is treated as unresolved.
NO_VALUE = "<no value>"

# Expression token markers (Syntax A)
EXPRESSION_OPEN = "{{"
EXPRESSION_CLOSE = "}}"

# Accepted marker pairs, including typographic look-alikes that rich-text
# paste puts in place of braces. A marker is always two identical characters,
# so a single curly quote around "{{.name}}" stays plain text.
EXPRESSION_OPEN_MARKERS = (
    EXPRESSION_OPEN,
    '““',   # LEFT DOUBLE QUOTATION MARK
    '｛｛',   # FULLWIDTH LEFT CURLY BRACKET
)
EXPRESSION_CLOSE_MARKERS = (
    EXPRESSION_CLOSE,
    '””',   # RIGHT DOUBLE QUOTATION MARK
    '｝｝',   # FULLWIDTH RIGHT CURLY BRACKET
)

# Simple token markers (Syntax B), ASCII only
SIMPLE_OPEN = "{"
SIMPLE_CLOSE = "}"

SYNTAX_EXPRESSION = "expression"
SYNTAX_SIMPLE = "simple"


# ============================================================
# Data Classes
# ============================================================

@dataclass(frozen=True)
class Span:
    """Half-open byte range [start, end) into a part's raw bytes"""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"invalid span [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    def shift(self, offset: int) -> 'Span':
        return Span(self.start + offset, self.end + offset)

    def slice(self, data: bytes) -> bytes:
        return bytes(data[self.start:self.end])


@dataclass(frozen=True)
class TagPair:
    """Open/close tag spans of one text node"""
    open_tag: Span
    close_tag: Span

    def __post_init__(self):
        if self.open_tag.end > self.close_tag.start:
            raise ValueError("text node close tag starts before its open tag ends")

    @property
    def content(self) -> Span:
        """Span of the raw (undecoded) text between the tags"""
        return Span(self.open_tag.end, self.close_tag.start)

    @property
    def self_closing(self) -> bool:
        """True for <w:t/>, which has no separate close tag"""
        return len(self.close_tag) == 0


# ============================================================
# Helper Functions
# ============================================================

def is_xml_part(name: str) -> bool:
    return name.lower().endswith('.xml')


def is_modifiable_part(name: str) -> bool:
    """Check if an archive entry belongs to the parts this library may rewrite"""
    return (
        name == DOCUMENT_XML
        or bool(HEADER_PATH_PATTERN.match(name))
        or bool(FOOTER_PATH_PATTERN.match(name))
        or name.startswith(MEDIA_PATH_PREFIX)
    )


def sanitize_xml_string(text: str) -> str:
    """
    Remove control characters that are illegal in XML 1.0.

    XML 1.0 allows: #x9 (tab), #xA (LF), #xD (CR), and #x20-#xD7FF, #xE000-#xFFFD, #x10000-#x10FFFF
    This function removes all other control characters (0x00-0x08, 0x0B, 0x0C, 0x0E-0x1F).

    Args:
        text: Text that may contain control characters

    Returns:
        Sanitized text safe for XML. Returns input unchanged if not a non-empty string.
    """
    if not text or not isinstance(text, str):
        return text
    illegal_chars = ''.join(
        chr(c) for c in range(0x20)
        if c not in (0x09, 0x0A, 0x0D)
    )
    return text.translate(str.maketrans('', '', illegal_chars))


def escape_xml_text(text: str) -> bytes:
    """
    Encode a rendered value for insertion into a <w:t> text node.

    Args:
        text: Rendered replacement value

    Returns:
        UTF-8 bytes with illegal control characters removed and &, <, > escaped
    """
    return escape(sanitize_xml_string(text), quote=False).encode('utf-8')


def format_text_preview(text: str, max_len: int = 30) -> str:
    """
    Format text for log output: remove newlines and truncate.

    Args:
        text: Text to format
        max_len: Maximum length before truncation

    Returns:
        Clean, truncated text with "..." suffix if truncated
    """
    if not text:
        return ""
    clean = text.replace('\n', ' ').replace('\r', '').replace('\t', ' ')
    while '  ' in clean:
        clean = clean.replace('  ', ' ')
    clean = clean.strip()
    if len(clean) > max_len:
        return clean[:max_len] + "..."
    return clean
