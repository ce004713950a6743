from __future__ import annotations

import ast
from pathlib import Path
import unittest


REPO_ROOT = Path(__file__).resolve().parent.parent
PACKAGE_DIR = REPO_ROOT / "src" / "luastack"
DISPATCH_MODULES = {"dispatch.py"}
OPERATION_PREFIXES = ("push", "to")


def _iter_python_files() -> list[Path]:
    return sorted(path for path in PACKAGE_DIR.rglob("*.py") if path.name not in DISPATCH_MODULES)


def _is_operation_call(node: ast.AST) -> bool:
    """``op.fn(...)``: invoking a resolved binding operation directly."""
    if not isinstance(node, ast.Call):
        return False
    func = node.func
    return isinstance(func, ast.Attribute) and func.attr == "fn"


def _is_traits_method_call(node: ast.AST) -> bool:
    """``SomethingTraits.push(...)`` or ``SomethingTraits.to_x(...)``."""
    if not isinstance(node, ast.Call):
        return False
    func = node.func
    if not (isinstance(func, ast.Attribute) and isinstance(func.value, ast.Name)):
        return False
    if not func.value.id.endswith("Traits"):
        return False
    return any(func.attr == prefix or func.attr.startswith(prefix + "_") for prefix in OPERATION_PREFIXES)


class DispatchHygieneTests(unittest.TestCase):
    def test_binding_operations_run_only_through_dispatch(self) -> None:
        violations: list[str] = []

        for path in _iter_python_files():
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
            for node in ast.walk(tree):
                if _is_operation_call(node):
                    rel = path.relative_to(REPO_ROOT)
                    violations.append(f"{rel}:{node.lineno}")

        self.assertEqual(
            [],
            violations,
            msg="Binding operations invoked outside dispatch:\n" + "\n".join(violations),
        )

    def test_no_direct_traits_method_calls(self) -> None:
        violations: list[str] = []

        for path in _iter_python_files():
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
            for node in ast.walk(tree):
                if _is_traits_method_call(node):
                    rel = path.relative_to(REPO_ROOT)
                    violations.append(f"{rel}:{node.lineno}")

        self.assertEqual(
            [],
            violations,
            msg="Traits methods called directly:\n" + "\n".join(violations),
        )


if __name__ == "__main__":
    unittest.main()
