"""Architecture guard: lower layers never import upward."""

from __future__ import annotations

import ast
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[2] / "placecache"

# layer -> layers it must not import
FORBIDDEN = {
    "domain": {"infrastructure", "persistence", "adapters", "application", "api", "security"},
    "persistence": {"adapters", "application", "api"},
    "adapters": {"application", "api"},
    "infrastructure": {"application", "api", "persistence"},
    "application": {"api"},
}


def _imports(path: Path) -> list[tuple[str, int]]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    found: list[tuple[str, int]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom) and node.module:
            found.append((node.module, node.lineno))
        elif isinstance(node, ast.Import):
            found.extend((alias.name, node.lineno) for alias in node.names)
    return found


def test_import_boundaries_guard():
    violations: list[str] = []
    for layer, banned in FORBIDDEN.items():
        for path in sorted((PACKAGE_ROOT / layer).rglob("*.py")):
            for module, lineno in _imports(path):
                parts = module.split(".")
                if parts[0] == "placecache" and len(parts) > 1 and parts[1] in banned:
                    violations.append(f"{path.relative_to(PACKAGE_ROOT)}:{lineno} imports {module}")
    assert violations == [], "Import boundary violations:\n" + "\n".join(violations)
