"""Path -> parser language mapping and import resolution to repository paths."""

from __future__ import annotations

import posixpath
from collections.abc import Collection

# languages understood by the parser service
EXTENSIONS: dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".py": "python",
    ".go": "go",
}

_JS_LANGUAGES = frozenset({"javascript", "jsx", "typescript", "tsx"})
_JS_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts")


def language_for_path(path: str) -> str | None:
    """Return the parser language for *path*, or None if unsupported."""
    _, ext = posixpath.splitext(path.lower())
    return EXTENSIONS.get(ext)


def resolve_import(source_path: str, module: str, known_paths: Collection[str]) -> list[str]:
    """Map an import of *module* found in *source_path* onto tracked files.

    Returns an empty list for modules outside the repository (third-party
    packages, the standard library). Go imports resolve to every ``.go`` file
    of the imported package directory.
    """
    language = language_for_path(source_path)
    if language in _JS_LANGUAGES:
        return _resolve_js(source_path, module, known_paths)
    if language == "python":
        return _resolve_python(source_path, module, known_paths)
    if language == "go":
        return _resolve_go(module, known_paths)
    return []


def _first_known(candidates: list[str], known_paths: Collection[str]) -> list[str]:
    for candidate in candidates:
        if candidate in known_paths:
            return [candidate]
    return []


def _resolve_js(source_path: str, module: str, known_paths: Collection[str]) -> list[str]:
    if not module.startswith("."):
        return []
    base = posixpath.normpath(posixpath.join(posixpath.dirname(source_path), module))
    candidates = [base]
    candidates += [base + suffix for suffix in _JS_SUFFIXES]
    candidates += [posixpath.join(base, "index" + suffix) for suffix in _JS_SUFFIXES]
    return _first_known(candidates, known_paths)


def _resolve_python(source_path: str, module: str, known_paths: Collection[str]) -> list[str]:
    if module.startswith("."):
        level = len(module) - len(module.lstrip("."))
        package = posixpath.dirname(source_path)
        for _ in range(level - 1):
            package = posixpath.dirname(package)
        rest = module[level:].replace(".", "/")
        base = posixpath.join(package, rest) if rest else package
        return _first_known([base + ".py", posixpath.join(base, "__init__.py")], known_paths)

    rel = module.replace(".", "/")
    # absolute imports may be rooted at the repository root or under src/
    for root in ("", "src/"):
        found = _first_known([f"{root}{rel}.py", f"{root}{rel}/__init__.py"], known_paths)
        if found:
            return found
    return []


def _resolve_go(module: str, known_paths: Collection[str]) -> list[str]:
    """Match the longest suffix of the import path against a package directory."""
    parts = module.split("/")
    dirs: dict[str, list[str]] = {}
    for path in known_paths:
        if path.endswith(".go") and not path.endswith("_test.go"):
            dirs.setdefault(posixpath.dirname(path), []).append(path)
    for i in range(len(parts)):
        directory = "/".join(parts[i:])
        if directory in dirs:
            return sorted(dirs[directory])
    return []
