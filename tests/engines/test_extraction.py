"""Tests for the extraction adapter: parser client, unit naming, import resolution."""

from __future__ import annotations

import json

import httpx
import pytest

from codeatlas.engines.extraction import (
    FunctionUnit,
    ParserClient,
    assign_unit_names,
    language_for_path,
    normalize_code,
    resolve_import,
    whole_file_unit,
)
from codeatlas.models.code_embedding import FILE_UNIT

# ── ParserClient ─────────────────────────────────────────────────────────


def _parser(handler) -> ParserClient:
    return ParserClient("http://parser.test/", transport=httpx.MockTransport(handler))


class TestParserClient:
    async def test_parse_maps_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "functions": [
                        {"name": "main", "code": "def main(): ...", "startLine": 1, "endLine": 2},
                        {"name": None, "code": "lambda: 0", "startLine": 4, "endLine": 4},
                    ],
                    "imports": [{"module": "os"}, {"module": ""}, {"module": ".util"}],
                },
            )

        async with _parser(handler) as client:
            result = await client.parse("def main(): ...", "python")

        assert seen["url"] == "http://parser.test/parse"
        assert seen["body"] == {"code": "def main(): ...", "language": "python"}
        assert [f.name for f in result.functions] == ["main", "anonymous"]
        assert result.functions[0].end_line == 2
        assert result.imports == ["os", ".util"]

    async def test_blank_code_skips_round_trip(self):
        def handler(request):  # pragma: no cover - must not be called
            raise AssertionError("parser called for blank input")

        async with _parser(handler) as client:
            result = await client.parse("   \n\t", "python")
        assert result.is_empty

    async def test_non_string_rejected(self):
        async with _parser(lambda r: httpx.Response(200, json={})) as client:
            with pytest.raises(TypeError):
                await client.parse(b"code", "python")

    async def test_http_error_propagates(self):
        async with _parser(lambda r: httpx.Response(503)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.parse("x = 1", "python")

    async def test_missing_fields_tolerated(self):
        async with _parser(lambda r: httpx.Response(200, json={"functions": None})) as client:
            result = await client.parse("x = 1", "python")
        assert result.is_empty


# ── unit naming ──────────────────────────────────────────────────────────


class TestUnits:
    def test_duplicate_names_get_suffixes_in_source_order(self):
        fns = [
            FunctionUnit("render", "b", 20, 30),
            FunctionUnit("render", "a", 1, 10),
            FunctionUnit("parse", "c", 12, 18),
        ]
        named = assign_unit_names(fns)
        assert [(n, f.code) for n, f in named] == [
            ("render", "a"),
            ("parse", "c"),
            ("render#2", "b"),
        ]

    def test_whole_file_unit(self):
        name, unit = whole_file_unit("a = 1\nb = 2\n")
        assert name == FILE_UNIT
        assert (unit.start_line, unit.end_line) == (1, 2)
        assert whole_file_unit("")[1].end_line == 1

    def test_normalize_code_ignores_formatting(self):
        a = "def f():\n    return 1   \n\n\n"
        b = "\n\ndef f():\n\n    return 1"
        assert normalize_code(a) == normalize_code(b) == "def f():\n    return 1"


# ── languages ────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "path,language",
    [
        ("src/app.ts", "typescript"),
        ("ui/Button.TSX", "tsx"),
        ("lib/index.mjs", "javascript"),
        ("pkg/main.go", "go"),
        ("tool.py", "python"),
        ("README.md", None),
        ("Makefile", None),
    ],
)
def test_language_for_path(path, language):
    assert language_for_path(path) == language


class TestResolveImport:
    KNOWN = {
        "src/app.ts",
        "src/util.ts",
        "src/components/index.tsx",
        "pkg/core/__init__.py",
        "pkg/core/models.py",
        "pkg/cli.py",
        "src/tools/run.py",
        "internal/store/db.go",
        "internal/store/cache.go",
        "internal/store/db_test.go",
    }

    def test_js_relative(self):
        assert resolve_import("src/app.ts", "./util", self.KNOWN) == ["src/util.ts"]
        assert resolve_import("src/app.ts", "./components", self.KNOWN) == [
            "src/components/index.tsx"
        ]

    def test_js_package_is_external(self):
        assert resolve_import("src/app.ts", "react", self.KNOWN) == []

    def test_python_relative(self):
        assert resolve_import("pkg/cli.py", ".core", self.KNOWN) == ["pkg/core/__init__.py"]
        assert resolve_import("pkg/core/models.py", "..cli", self.KNOWN) == ["pkg/cli.py"]

    def test_python_absolute_and_src_root(self):
        assert resolve_import("pkg/cli.py", "pkg.core.models", self.KNOWN) == [
            "pkg/core/models.py"
        ]
        assert resolve_import("pkg/cli.py", "tools.run", self.KNOWN) == ["src/tools/run.py"]
        assert resolve_import("pkg/cli.py", "json", self.KNOWN) == []

    def test_go_package_directory(self):
        got = resolve_import("cmd/main.go", "github.com/acme/app/internal/store", self.KNOWN)
        assert got == ["internal/store/cache.go", "internal/store/db.go"]

    def test_unsupported_source(self):
        assert resolve_import("README.md", "./util", self.KNOWN) == []
