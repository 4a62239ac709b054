"""Parsing of ``pulumi preview`` change summaries.

The preview summary is human-readable text such as::

    Resources:
        + 2 to create
        ~ 1 to update
        - 1 to delete
        +-1 to replace
        5 unchanged

A migration is verified when every change count is zero.
"""

import re

from pydantic import BaseModel

_CHANGE_PATTERNS: dict[str, re.Pattern[str]] = {
    "create": re.compile(r"(?<![-~])\+\s*(\d+)\s+to create"),
    "update": re.compile(r"~\s*(\d+)\s+to update"),
    "delete": re.compile(r"(?<!\+)-\s*(\d+)\s+to delete"),
    "replace": re.compile(r"\+-\s*(\d+)\s+to replace"),
}


class PreviewSummary(BaseModel):
    """Pending change counts from a preview."""

    create: int = 0
    update: int = 0
    delete: int = 0
    replace: int = 0

    @classmethod
    def parse(cls, output: str) -> "PreviewSummary":
        counts: dict[str, int] = {}
        for change, pattern in _CHANGE_PATTERNS.items():
            counts[change] = sum(int(match) for match in pattern.findall(output or ""))
        return cls(**counts)

    @property
    def has_changes(self) -> bool:
        return any((self.create, self.update, self.delete, self.replace))

    def describe(self) -> str:
        parts = [
            f"{count} to {change}"
            for change, count in self.model_dump().items()
            if count
        ]
        return ", ".join(parts) if parts else "no changes"
