"""Diagnostic parsers: find the offending property in a rejected write.

The adaptive writer's retry loop only needs one question answered about a
400 response: which single field did the store refuse? How the store
phrases that is dialect-specific, so the answer comes from a pluggable
``DiagnosticParser``. Only the Dataverse phrasing is provided; a different
backend must supply its own parser.
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable


@runtime_checkable
class DiagnosticParser(Protocol):
    """Extracts the name of the invalid property from response text."""

    def parse_invalid_property(self, response_text: str) -> str | None:
        ...


class RegexDiagnosticParser:
    """Parser driven by a regex whose first group is the property name."""

    def __init__(self, pattern: str | re.Pattern[str]):
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern

    def parse_invalid_property(self, response_text: str) -> str | None:
        if not response_text:
            return None
        match = self.pattern.search(response_text)
        if match is None:
            return None
        return match.group(1) or None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.pattern.pattern!r})"


class InvalidPropertyParser(RegexDiagnosticParser):
    """Dataverse: ``... Invalid property 'toba_foo' was found in entity ...``."""

    PATTERN = r"Invalid property '([^']+)'"

    def __init__(self):
        super().__init__(self.PATTERN)


__all__ = ["DiagnosticParser", "RegexDiagnosticParser", "InvalidPropertyParser"]
