#!/usr/bin/env python3
"""
ABOUTME: Progress reporting hooks for placeholder processing
ABOUTME: NullObserver by default; PrintObserver prints [Replaced]/[Skip] lines
"""

import sys
from typing import Optional, Protocol, TextIO

from .common import format_text_preview
from .placeholders import Placeholder


class Observer(Protocol):
    def on_part(self, part_name: str, placeholder_count: int) -> None:
        ...

    def on_replaced(self, placeholder: Placeholder, value: str) -> None:
        ...

    def on_skipped(self, placeholder: Placeholder, reason: str) -> None:
        ...


class NullObserver:
    """Default observer, reports nothing"""

    def on_part(self, part_name: str, placeholder_count: int) -> None:
        pass

    def on_replaced(self, placeholder: Placeholder, value: str) -> None:
        pass

    def on_skipped(self, placeholder: Placeholder, reason: str) -> None:
        pass


class PrintObserver(NullObserver):
    """Prints progress lines; per-placeholder detail only when verbose"""

    def __init__(self, verbose: bool = False, stream: Optional[TextIO] = None):
        self.verbose = verbose
        self.stream = stream

    def _print(self, message: str):
        print(message, file=self.stream or sys.stdout)

    def on_part(self, part_name: str, placeholder_count: int) -> None:
        if placeholder_count or self.verbose:
            self._print(f"{part_name}: {placeholder_count} placeholder(s)")

    def on_replaced(self, placeholder: Placeholder, value: str) -> None:
        if self.verbose:
            where = " (fragmented)" if placeholder.is_fragmented else ""
            self._print(f"  [Replaced] {placeholder.token}{where} -> '{format_text_preview(value)}'")

    def on_skipped(self, placeholder: Placeholder, reason: str) -> None:
        if self.verbose:
            self._print(f"  [Skip] {placeholder.token}: {reason}")
