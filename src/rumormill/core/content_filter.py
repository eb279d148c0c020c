# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Content admissibility gate consulted before a claim is created.

Admissibility (relevance, spam, generated text) is decided by the embedding
application. It plugs in any object with an ``evaluate(text)`` method; the
default filter approves everything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class FilterResult:
    approved: bool
    reasons: list[str] = field(default_factory=list)
    confidence: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "approved": self.approved,
            "reasons": list(self.reasons),
            "confidence": self.confidence,
        }


@runtime_checkable
class ContentFilter(Protocol):
    """Decides whether claim text may be published."""

    def evaluate(self, text: str) -> FilterResult: ...


class PermissiveContentFilter:
    """Approves all content."""

    def evaluate(self, text: str) -> FilterResult:
        return FilterResult(approved=True)
