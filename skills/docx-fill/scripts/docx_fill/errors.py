#!/usr/bin/env python3
"""
ABOUTME: Exception types raised by docx_fill
ABOUTME: Archive, part parse, unregistered part and I/O errors share DocxFillError
"""

from typing import Optional


class DocxFillError(Exception):
    """Base class for all docx_fill errors"""


class ArchiveError(DocxFillError, ValueError):
    """The docx archive is unreadable, corrupt or lacks word/document.xml"""


class PartParseError(DocxFillError, ValueError):
    """Malformed run/text nesting inside an XML part"""

    def __init__(self, message: str, part_name: Optional[str] = None,
                 offset: Optional[int] = None):
        self.part_name = part_name
        self.offset = offset
        location = []
        if part_name:
            location.append(part_name)
        if offset is not None:
            location.append(f"byte {offset}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class UnregisteredPartError(DocxFillError, KeyError):
    """set_file() was called for a part the document does not track"""

    def __str__(self):
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ''


class DocumentIOError(DocxFillError, OSError):
    """Reading the template or writing the output failed"""
