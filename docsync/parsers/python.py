"""Python parser built on the standard library ``ast`` module."""

from __future__ import annotations

import ast
from typing import List, Optional, Tuple, Union

from ..errors import SourceParseError
from ..models import UNIT_KIND_MODULE, DocumentedUnit, Member
from .base import UnitParser

_FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]


class PythonParser(UnitParser):
    """Summarises a Python module: top-level callables, classes and constants."""

    language = "python"
    extensions = (".py", ".pyi")

    def parse(self, source: str, identity: str) -> DocumentedUnit:
        try:
            tree = ast.parse(source, filename=identity)
        except SyntaxError as exc:
            location = f" (line {exc.lineno})" if exc.lineno else ""
            raise SourceParseError(f"{identity}: {exc.msg}{location}", path=identity) from exc
        except ValueError as exc:
            raise SourceParseError(f"{identity}: {exc}", path=identity) from exc

        return DocumentedUnit(
            identity=identity,
            kind=UNIT_KIND_MODULE,
            language=self.language,
            members=tuple(self._module_members(tree)),
            doc=ast.get_docstring(tree),
            source_path=identity,
        )

    def _module_members(self, tree: ast.Module) -> List[Member]:
        members: List[Member] = []
        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                members.append(self._function(node, kind="function"))
            elif isinstance(node, ast.ClassDef):
                members.append(self._class(node))
            else:
                for name, annotation in _assigned_names(node):
                    if name.isupper():
                        members.append(
                            Member(
                                name=name,
                                kind="constant",
                                visibility=_visibility(name),
                                signature=annotation,
                            )
                        )
        return members

    def _class(self, node: ast.ClassDef) -> Member:
        children: List[Member] = []
        for child in node.body:
            if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
                children.append(self._function(child, kind="method"))
            elif isinstance(child, ast.ClassDef):
                children.append(self._class(child))
            else:
                for name, annotation in _assigned_names(child):
                    children.append(
                        Member(
                            name=name,
                            kind="field",
                            visibility=_visibility(name),
                            signature=annotation,
                        )
                    )

        bases = [ast.unparse(base) for base in node.bases]
        bases.extend(ast.unparse(keyword) for keyword in node.keywords)
        signature = _decorated(node.decorator_list, f"({', '.join(bases)})" if bases else "")
        return Member(
            name=node.name,
            kind="class",
            visibility=_visibility(node.name),
            signature=signature or None,
            doc=ast.get_docstring(node),
            children=tuple(children),
        )

    @staticmethod
    def _function(node: _FunctionNode, *, kind: str) -> Member:
        signature = f"({ast.unparse(node.args)})"
        if node.returns is not None:
            signature = f"{signature} -> {ast.unparse(node.returns)}"
        if isinstance(node, ast.AsyncFunctionDef):
            signature = f"async {signature}"
        return Member(
            name=node.name,
            kind=kind,
            visibility=_visibility(node.name),
            signature=_decorated(node.decorator_list, signature),
            doc=ast.get_docstring(node),
        )


def _assigned_names(node: ast.stmt) -> List[Tuple[str, Optional[str]]]:
    if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
        return [(node.target.id, ast.unparse(node.annotation))]
    if isinstance(node, ast.Assign):
        return [(target.id, None) for target in node.targets if isinstance(target, ast.Name)]
    return []


def _decorated(decorators: List[ast.expr], signature: str) -> str:
    if not decorators:
        return signature
    prefix = " ".join(f"@{ast.unparse(decorator)}" for decorator in decorators)
    return f"{prefix} {signature}".strip()


def _visibility(name: str) -> str:
    if name.startswith("__") and name.endswith("__"):
        return "public"
    return "private" if name.startswith("_") else "public"


__all__ = ["PythonParser"]
