"""Best-effort dependency hints for a file under review.

The hinter scans source text with regular expressions, not a parser, and
guesses which other files the reviewed file relates to: imported modules,
declared types and (for C#) classes whose methods it calls. The result is a
mapping of candidate file name to a short description, rendered into the
prompt as context. False positives and misses are expected; nothing
downstream depends on the hints being right.
"""

from __future__ import annotations

import logging
import posixpath
import re
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

_CSHARP_USING_RE = re.compile(r"(?:using|import)\s+([\w\.]+)(?:\s*;|\s*\{)")
_CSHARP_TYPE_RE = re.compile(r"(?:class|interface|struct)\s+(\w+)")
_CSHARP_CALL_RE = re.compile(r"(\w+)\.\w+\(")
_CSHARP_SKIP_PREFIXES = ("System", "Microsoft")

_JS_IMPORT_RE = re.compile(
    r"""(?:require|import)\s*\(\s*['"]([^'"]+)['"]\s*\)"""
    r"""|\bimport\s+(?:[^'";]+?\s+from\s+)?['"]([^'"]+)['"]"""
)
_JS_TYPE_RE = re.compile(r"\b(?:class|interface)\s+(\w+)")
_JS_REACT_RE = re.compile(r"\b[Rr]eact\.")

_PY_IMPORT_RE = re.compile(
    r"^[ \t]*(?:from[ \t]+(\.*[\w\.]*)[ \t]+import\b|import[ \t]+([\w\.]+(?:[ \t]*,[ \t]*[\w\.]+)*))",
    re.MULTILINE,
)
_PY_CLASS_RE = re.compile(r"^[ \t]*class[ \t]+(\w+)", re.MULTILINE)
_PY_SKIP_MODULES = frozenset(sys.stdlib_module_names) | {"__future__"}

_JAVA_IMPORT_RE = re.compile(r"^[ \t]*import[ \t]+(?:static[ \t]+)?([\w\.]+)", re.MULTILINE)
_JAVA_TYPE_RE = re.compile(r"\b(?:class|interface|enum|record)\s+(\w+)")
_JAVA_SKIP_PREFIXES = ("java.", "javax.", "jdk.", "sun.")

_JS_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")


def _add(dependencies: dict[str, str], key: str, description: str) -> None:
    if key and key not in dependencies:
        dependencies[key] = description


def _posix(path: str) -> str:
    return path.replace("\\", "/")


def resolve_js_import(current_file: str, import_path: str) -> str:
    """Guess the file an ES/CommonJS import refers to.

    Relative specifiers are joined onto the importing file's directory and
    given its extension when they have none; bare package names become
    ``node_modules/<pkg>/index.js``.
    """
    if import_path.startswith("./") or import_path.startswith("../"):
        current_dir = posixpath.dirname(_posix(current_file))
        resolved = posixpath.normpath(posixpath.join(current_dir, import_path))
        if not posixpath.splitext(resolved)[1]:
            resolved += posixpath.splitext(current_file)[1]
        return resolved
    if not import_path.startswith("."):
        return f"node_modules/{import_path}/index.js"
    return import_path


def resolve_python_import(current_file: str, module: str) -> str:
    """Guess the file a Python import refers to.

    ``a.b.c`` becomes ``a/b/c.py``. Relative imports (``.x``, ``..x``) walk up
    from the importing file's package, one directory per extra dot.
    """
    if module.startswith("."):
        level = len(module) - len(module.lstrip("."))
        remainder = module[level:]
        base = posixpath.dirname(_posix(current_file))
        for _ in range(level - 1):
            base = posixpath.dirname(base)
        if not remainder:
            return posixpath.join(base, "__init__.py")
        return posixpath.join(base, *remainder.split(".")) + ".py"
    return "/".join(module.split(".")) + ".py"


def resolve_java_import(import_path: str) -> str:
    return import_path.rstrip(".").replace(".", "/") + ".java"


class DependencyHinter:
    """Maps a file's text to related-file hints by file extension.

    ``repository_path`` is only used to look up C# files by class name; the
    other languages are resolved from the import text alone.
    """

    def __init__(self, repository_path: str | Path | None = None):
        self.repository_path = Path(repository_path) if repository_path is not None else None

    def analyze(self, file_path: str, content: str) -> dict[str, str]:
        """Return the dependency hints for one file. Never raises.

        If a scan fails part-way, whatever was collected before the failure
        is returned and the error is logged.
        """
        dependencies: dict[str, str] = {}
        lowered = file_path.lower()
        try:
            if lowered.endswith(".cs"):
                self._extract_csharp(content, dependencies)
            elif lowered.endswith(_JS_EXTENSIONS):
                self._extract_js_ts(file_path, content, dependencies)
            elif lowered.endswith(".py"):
                self._extract_python(file_path, content, dependencies)
            elif lowered.endswith(".java"):
                self._extract_java(content, dependencies)
        except Exception as e:
            logger.warning("Error analyzing dependencies for %s: %s", file_path, e)
        return dependencies

    def _extract_csharp(self, content: str, dependencies: dict[str, str]) -> None:
        for match in _CSHARP_USING_RE.finditer(content):
            namespace = match.group(1)
            if namespace.split(".")[0] in _CSHARP_SKIP_PREFIXES:
                continue
            found = self.find_csharp_file(namespace)
            if found:
                _add(dependencies, found, "C# dependency")

        for match in _CSHARP_TYPE_RE.finditer(content):
            _add(dependencies, f"{match.group(1)}.cs", "dependency")

        for match in _CSHARP_CALL_RE.finditer(content):
            _add(dependencies, f"{match.group(1)}.cs", "dependency")

    def find_csharp_file(self, namespace_or_class: str) -> str | None:
        """Repo-relative path of the first ``*<LastSegment>.cs`` file, if any."""
        if self.repository_path is None:
            return None
        name = namespace_or_class.split(".")[-1]
        try:
            match = next(self.repository_path.rglob(f"*{name}.cs"), None)
        except OSError as e:
            logger.debug("Could not search %s for %s.cs: %s", self.repository_path, name, e)
            return None
        if match is None:
            return None
        return match.relative_to(self.repository_path).as_posix()

    def _extract_js_ts(self, file_path: str, content: str, dependencies: dict[str, str]) -> None:
        for match in _JS_IMPORT_RE.finditer(content):
            specifier = match.group(1) or match.group(2)
            if not specifier or specifier.startswith("node:"):
                continue
            _add(dependencies, resolve_js_import(file_path, specifier), "JS/TS dependency")

        ext = posixpath.splitext(file_path)[1]
        for match in _JS_TYPE_RE.finditer(content):
            _add(dependencies, f"{match.group(1)}{ext}", "JS/TS dependency")

        if _JS_REACT_RE.search(content):
            _add(dependencies, "react.js", "JS/TS dependency")

    def _extract_python(self, file_path: str, content: str, dependencies: dict[str, str]) -> None:
        for match in _PY_IMPORT_RE.finditer(content):
            if match.group(1) is not None:
                modules = [match.group(1)]
            else:
                modules = [m.strip() for m in match.group(2).split(",")]
            for module in modules:
                if not module.startswith(".") and module.split(".")[0] in _PY_SKIP_MODULES:
                    continue
                _add(dependencies, resolve_python_import(file_path, module), "Python dependency")

        for match in _PY_CLASS_RE.finditer(content):
            _add(dependencies, f"{match.group(1)}.py", "Python class")

    def _extract_java(self, content: str, dependencies: dict[str, str]) -> None:
        for match in _JAVA_IMPORT_RE.finditer(content):
            import_path = match.group(1)
            if import_path.startswith(_JAVA_SKIP_PREFIXES):
                continue
            _add(dependencies, resolve_java_import(import_path), "Java import")

        for match in _JAVA_TYPE_RE.finditer(content):
            _add(dependencies, f"{match.group(1)}.java", "Java dependency")
