"""Decode result carrying degradation warnings alongside the value."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class ParseResult(Generic[T]):
    """Successful decode. Hard failures raise :class:`ValidationFailure` instead.

    ``warnings`` lists sub-structures that were degraded to empty values, so a
    caller can choose to treat them as errors.
    """

    value: T
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings
