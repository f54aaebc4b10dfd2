"""Turn parser output into named embedding units."""

from __future__ import annotations

from codeatlas.engines.extraction.models import FunctionUnit
from codeatlas.models.code_embedding import FILE_UNIT


def assign_unit_names(functions: list[FunctionUnit]) -> list[tuple[str, FunctionUnit]]:
    """Give each function a unit name unique within its file revision.

    Overloads and repeated anonymous functions get ``#2``, ``#3``... suffixes in
    source order, so the same function keeps its name across revisions.
    """
    seen: dict[str, int] = {}
    named = []
    for fn in sorted(functions, key=lambda f: (f.start_line, f.end_line)):
        seen[fn.name] = seen.get(fn.name, 0) + 1
        n = seen[fn.name]
        named.append((fn.name if n == 1 else f"{fn.name}#{n}", fn))
    return named


def whole_file_unit(content: str) -> tuple[str, FunctionUnit]:
    lines = content.count("\n") + (0 if content.endswith("\n") else 1)
    unit = FunctionUnit(name=FILE_UNIT, code=content, start_line=1, end_line=max(lines, 1))
    return FILE_UNIT, unit


def normalize_code(code: str) -> str:
    """Strip trailing whitespace and blank lines so formatting-only edits embed identically."""
    lines = [line.rstrip() for line in code.strip("\n").splitlines()]
    return "\n".join(line for line in lines if line)
