#!/usr/bin/env python3
"""
ABOUTME: Resolves placeholders and splices rendered values into part bytes
ABOUTME: Unresolved placeholders are skipped and keep their original bytes
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .common import NO_VALUE, escape_xml_text
from .evaluator import Evaluator, Resolution
from .observer import NullObserver, Observer
from .placeholders import Placeholder


STATUS_REPLACED = 'replaced'
STATUS_SKIPPED = 'skipped'


@dataclass
class ReplacementResult:
    """Result of processing one placeholder"""
    placeholder: Placeholder
    status: str
    value: Optional[str] = None
    reason: Optional[str] = None

    @property
    def replaced(self) -> bool:
        return self.status == STATUS_REPLACED


def splice(buffer: bytearray, start: int, end: int, value: bytes) -> int:
    """
    Replace buffer[start:end] with value in place.

    Returns:
        Change in buffer length
    """
    if not 0 <= start <= end <= len(buffer):
        raise ValueError(f"splice range [{start}, {end}) outside buffer of {len(buffer)} bytes")
    buffer[start:end] = value
    return len(value) - (end - start)


class ReplacementEngine:
    """
    Substitutes resolved placeholders inside one part's bytes.

    Placeholders are processed in descending start position so the recorded
    offsets of those still pending stay valid after each length-changing splice.
    For a placeholder spanning several runs, everything between its first and
    last byte (including the run boundary markup) is replaced, which leaves
    the rendered value inside the first run's text node.
    """

    def __init__(self, evaluator: Evaluator, observer: Optional[Observer] = None):
        self.evaluator = evaluator
        self.observer = observer or NullObserver()

    def resolve(self, placeholder: Placeholder, context: Any) -> Resolution:
        resolution = self.evaluator.evaluate(placeholder.key, context)
        if resolution.found and NO_VALUE in resolution.value:
            return Resolution('', False, "result contains <no value>")
        return resolution

    def apply(self, data: bytes, placeholders: List[Placeholder],
              context: Any) -> Tuple[bytes, List[ReplacementResult]]:
        """
        Resolve and substitute placeholders of one part.

        Args:
            data: Part bytes the placeholders were located in
            placeholders: Placeholders of this part
            context: Template data or replacement map; None skips everything

        Returns:
            Tuple of (new part bytes, results in document order)
        """
        buffer = bytearray(data)
        results: List[ReplacementResult] = []
        pending_limit = len(buffer)

        for placeholder in sorted(placeholders, key=lambda p: p.start_pos, reverse=True):
            if placeholder.end_pos > pending_limit:
                raise ValueError(f"overlapping placeholders at byte {placeholder.start_pos}")
            pending_limit = placeholder.start_pos

            resolution = self.resolve(placeholder, context)
            if not resolution.found:
                self.observer.on_skipped(placeholder, resolution.reason or "not found")
                results.append(ReplacementResult(placeholder, STATUS_SKIPPED,
                                                 reason=resolution.reason))
                continue

            splice(buffer, placeholder.start_pos, placeholder.end_pos,
                   escape_xml_text(resolution.value))
            self.observer.on_replaced(placeholder, resolution.value)
            results.append(ReplacementResult(placeholder, STATUS_REPLACED,
                                             value=resolution.value))

        results.reverse()
        return bytes(buffer), results
