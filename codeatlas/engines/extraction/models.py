"""Parser results."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FunctionUnit:
    name: str
    code: str
    start_line: int
    end_line: int


@dataclass(frozen=True)
class ParseResult:
    functions: list[FunctionUnit] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.functions and not self.imports
