"""Tree-sitter powered parser for Java, JavaScript, TypeScript, Rust and C# sources."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from ..errors import SourceParseError
from ..logging import get_logger
from ..models import UNIT_KIND_FILE, DocumentedUnit, Member
from .base import UnitParser

try:  # pragma: no cover - optional dependency
    from tree_sitter_languages import get_parser

    TREE_SITTER_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    get_parser = None  # type: ignore[assignment]
    TREE_SITTER_AVAILABLE = False


_EXTENSIONS: Dict[str, tuple[str, ...]] = {
    "java": (".java",),
    "javascript": (".js", ".jsx", ".mjs", ".cjs"),
    "typescript": (".ts", ".tsx"),
    "rust": (".rs",),
    "csharp": (".cs",),
}

# Grammar names in tree_sitter_languages where they differ from ours.
_GRAMMARS = {"csharp": "c_sharp"}

_JAVA_TYPES = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "enum_declaration": "enum",
    "record_declaration": "record",
}

_SCRIPT_DECLARATIONS = {
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "class_declaration": "class",
    "abstract_class_declaration": "class",
    "interface_declaration": "interface",
    "type_alias_declaration": "type",
    "enum_declaration": "enum",
}

_RUST_ITEMS = {
    "struct_item": "struct",
    "enum_item": "enum",
    "union_item": "union",
    "trait_item": "trait",
    "function_item": "function",
    "function_signature_item": "function",
    "const_item": "constant",
    "static_item": "static",
    "type_item": "type",
    "mod_item": "module",
    "impl_item": "impl",
}

_CSHARP_TYPES = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "struct_declaration": "struct",
    "enum_declaration": "enum",
    "record_declaration": "record",
    "record_struct_declaration": "record",
}

_CSHARP_NAMESPACES = {"namespace_declaration", "file_scoped_namespace_declaration"}

_XML_TAG = re.compile(r"<[^>]+>")


class TreeSitterParser(UnitParser):
    """Extracts declarations from one language's syntax tree."""

    def __init__(self, language: str, enabled: Optional[bool] = None) -> None:
        if language not in _EXTENSIONS:
            raise ValueError(f"Unsupported tree-sitter language: {language}")
        self.language = language
        self.extensions = _EXTENSIONS[language]
        self._enabled = TREE_SITTER_AVAILABLE if enabled is None else enabled
        self._parsers: Dict[str, object] = {}
        self.logger = get_logger("parsers.tree_sitter")

    @property
    def available(self) -> bool:
        return self._enabled

    def supports(self, path) -> bool:  # type: ignore[no-untyped-def]
        if not self._enabled:
            return False
        return super().supports(path)

    def parse(self, source: str, identity: str) -> DocumentedUnit:
        grammar = "tsx" if identity.lower().endswith(".tsx") else _GRAMMARS.get(self.language, self.language)
        parser = self._get_parser(grammar, identity)
        source_bytes = source.encode("utf-8")
        tree = parser.parse(source_bytes)
        if tree.root_node.has_error:
            self.logger.debug("%s: syntax errors present; summary may be partial", identity)

        if self.language == "java":
            members = list(self._java_members(tree.root_node, source_bytes))
            doc = _leading_doc(tree.root_node, source_bytes)
        elif self.language == "rust":
            members = list(self._rust_items(tree.root_node, source_bytes))
            doc = _rust_inner_doc(tree.root_node, source_bytes)
        elif self.language == "csharp":
            members = list(self._csharp_members(tree.root_node, source_bytes, top_level=True))
            doc = None
        else:
            members = list(self._script_members(tree.root_node, source_bytes))
            doc = _leading_doc(tree.root_node, source_bytes)

        return DocumentedUnit(
            identity=identity,
            kind=UNIT_KIND_FILE,
            language=self.language,
            members=_named(members),
            doc=doc,
            source_path=identity,
        )

    def _get_parser(self, grammar: str, identity: str):  # type: ignore[no-untyped-def]
        parser = self._parsers.get(grammar)
        if parser is not None:
            return parser
        if not self._enabled or get_parser is None:
            raise SourceParseError(
                f"{identity}: tree-sitter is not installed; cannot parse {self.language}",
                path=identity,
            )
        parser = get_parser(grammar)
        self._parsers[grammar] = parser
        return parser

    # Java -----------------------------------------------------------------

    def _java_members(self, node, source_bytes) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        for child in node.named_children:
            kind = _JAVA_TYPES.get(child.type)
            if kind:
                yield self._java_type(child, kind, source_bytes)

    def _java_type(self, node, kind: str, source_bytes) -> Member:  # type: ignore[no-untyped-def]
        children: List[Member] = []
        body = node.child_by_field_name("body")
        for child in body.named_children if body is not None else ():
            nested = _JAVA_TYPES.get(child.type)
            if nested:
                children.append(self._java_type(child, nested, source_bytes))
            elif child.type in {"method_declaration", "constructor_declaration"}:
                children.append(self._java_method(child, source_bytes))
            elif child.type in {"field_declaration", "constant_declaration"}:
                children.extend(self._java_fields(child, source_bytes))

        return Member(
            name=_field_text(node, "name", source_bytes),
            kind=kind,
            visibility=_java_visibility(node, source_bytes),
            signature=_java_type_signature(node, source_bytes),
            doc=_doc_comment(node, source_bytes),
            children=tuple(children),
        )

    def _java_method(self, node, source_bytes) -> Member:  # type: ignore[no-untyped-def]
        params = _field_text(node, "parameters", source_bytes)
        return_type = _field_text(node, "type", source_bytes)
        signature = f"{params} -> {return_type}" if return_type else params
        return Member(
            name=_field_text(node, "name", source_bytes),
            kind="constructor" if node.type == "constructor_declaration" else "method",
            visibility=_java_visibility(node, source_bytes),
            signature=signature or None,
            doc=_doc_comment(node, source_bytes),
        )

    def _java_fields(self, node, source_bytes) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        field_type = _field_text(node, "type", source_bytes)
        visibility = _java_visibility(node, source_bytes)
        doc = _doc_comment(node, source_bytes)
        for child in node.named_children:
            if child.type != "variable_declarator":
                continue
            name = _field_text(child, "name", source_bytes)
            if name:
                yield Member(
                    name=name,
                    kind="field",
                    visibility=visibility,
                    signature=field_type or None,
                    doc=doc,
                )

    # JavaScript / TypeScript ---------------------------------------------

    def _script_members(self, node, source_bytes) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        for child in node.named_children:
            exported = False
            target = child
            if child.type == "export_statement":
                exported = True
                target = child.child_by_field_name("declaration")
                if target is None:
                    continue
            member = self._script_declaration(target, child, exported, source_bytes)
            if member is not None:
                yield from member

    def _script_declaration(self, node, anchor, exported: bool, source_bytes) -> Optional[List[Member]]:  # type: ignore[no-untyped-def]
        visibility = "public" if exported else "internal"
        doc = _doc_comment(anchor, source_bytes)
        kind = _SCRIPT_DECLARATIONS.get(node.type)
        if kind == "class":
            return [self._script_class(node, visibility, doc, source_bytes)]
        if kind:
            params = _field_text(node, "parameters", source_bytes)
            return_type = _field_text(node, "return_type", source_bytes).lstrip(":").strip()
            signature = f"{params} -> {return_type}" if params and return_type else params
            return [
                Member(
                    name=_field_text(node, "name", source_bytes),
                    kind=kind,
                    visibility=visibility,
                    signature=signature or None,
                    doc=doc,
                )
            ]
        if node.type in {"lexical_declaration", "variable_declaration"}:
            return list(self._script_variables(node, visibility, doc, source_bytes))
        return None

    def _script_class(self, node, visibility: str, doc: Optional[str], source_bytes) -> Member:  # type: ignore[no-untyped-def]
        children: List[Member] = []
        body = node.child_by_field_name("body")
        for child in body.named_children if body is not None else ():
            if child.type in {"method_definition", "method_signature", "abstract_method_signature"}:
                name = _field_text(child, "name", source_bytes)
                children.append(
                    Member(
                        name=name,
                        kind="method",
                        visibility=_script_member_visibility(child, name, source_bytes),
                        signature=_field_text(child, "parameters", source_bytes) or None,
                        doc=_doc_comment(child, source_bytes),
                    )
                )
            elif child.type in {"public_field_definition", "field_definition"}:
                name = _field_text(child, "name", source_bytes) or _field_text(
                    child, "property", source_bytes
                )
                if not name:
                    continue
                annotation = _field_text(child, "type", source_bytes).lstrip(":").strip()
                children.append(
                    Member(
                        name=name,
                        kind="field",
                        visibility=_script_member_visibility(child, name, source_bytes),
                        signature=annotation or None,
                        doc=_doc_comment(child, source_bytes),
                    )
                )

        heritage = [
            _node_text(child, source_bytes)
            for child in node.named_children
            if child.type in {"class_heritage", "extends_clause", "implements_clause"}
        ]
        return Member(
            name=_field_text(node, "name", source_bytes),
            kind="class",
            visibility=visibility,
            signature=" ".join(heritage) or None,
            doc=doc,
            children=tuple(children),
        )

    def _script_variables(self, node, visibility: str, doc: Optional[str], source_bytes) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        for child in node.named_children:
            if child.type != "variable_declarator":
                continue
            name_node = child.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            value = child.child_by_field_name("value")
            if value is not None and value.type in {"arrow_function", "function", "function_expression"}:
                kind = "function"
                signature = _field_text(value, "parameters", source_bytes) or None
            else:
                kind = "variable"
                signature = _field_text(child, "type", source_bytes).lstrip(":").strip() or None
            yield Member(
                name=_node_text(name_node, source_bytes),
                kind=kind,
                visibility=visibility,
                signature=signature,
                doc=doc,
            )

    # Rust -----------------------------------------------------------------

    def _rust_items(self, node, source_bytes, inherited: Optional[str] = None) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        for child in node.named_children:
            kind = _RUST_ITEMS.get(child.type)
            if kind is None:
                continue
            visibility = inherited or _rust_visibility(child, source_bytes)
            doc = _rust_outer_doc(child, source_bytes)
            if kind == "impl":
                yield self._rust_impl(child, doc, source_bytes)
            elif kind == "module":
                body = child.child_by_field_name("body")
                yield Member(
                    name=_field_text(child, "name", source_bytes),
                    kind=kind,
                    visibility=visibility,
                    doc=doc,
                    children=tuple(self._rust_items(body, source_bytes)) if body is not None else (),
                )
            elif kind == "trait":
                body = child.child_by_field_name("body")
                # Trait methods share the trait's visibility.
                methods = tuple(self._rust_items(body, source_bytes, visibility)) if body is not None else ()
                yield Member(
                    name=_field_text(child, "name", source_bytes),
                    kind=kind,
                    visibility=visibility,
                    signature=_field_text(child, "bounds", source_bytes) or None,
                    doc=doc,
                    children=methods,
                )
            else:
                yield Member(
                    name=_field_text(child, "name", source_bytes),
                    kind=kind,
                    visibility=visibility,
                    signature=_rust_signature(child, kind, source_bytes),
                    doc=doc,
                    children=tuple(self._rust_type_children(child, source_bytes)),
                )

    def _rust_impl(self, node, doc: Optional[str], source_bytes) -> Member:  # type: ignore[no-untyped-def]
        trait = _field_text(node, "trait", source_bytes)
        body = node.child_by_field_name("body")
        # Methods of a trait impl are as visible as the trait itself.
        methods = (
            tuple(self._rust_items(body, source_bytes, "public" if trait else None))
            if body is not None
            else ()
        )
        return Member(
            name=_field_text(node, "type", source_bytes),
            kind="impl",
            visibility="public",
            signature=trait or None,
            doc=doc,
            children=methods,
        )

    def _rust_type_children(self, node, source_bytes) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        body = node.child_by_field_name("body")
        if body is None:
            return
        for child in body.named_children:
            if child.type == "field_declaration":
                yield Member(
                    name=_field_text(child, "name", source_bytes),
                    kind="field",
                    visibility=_rust_visibility(child, source_bytes),
                    signature=_field_text(child, "type", source_bytes) or None,
                    doc=_rust_outer_doc(child, source_bytes),
                )
            elif child.type == "enum_variant":
                variant_body = child.child_by_field_name("body")
                yield Member(
                    name=_field_text(child, "name", source_bytes),
                    kind="variant",
                    signature=_node_text(variant_body, source_bytes) if variant_body is not None else None,
                    doc=_rust_outer_doc(child, source_bytes),
                )

    # C# -------------------------------------------------------------------

    def _csharp_members(self, node, source_bytes, top_level: bool = False) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        for child in node.named_children:
            if child.type in _CSHARP_NAMESPACES:
                body = child.child_by_field_name("body")
                # File-scoped namespaces own the declarations that follow them.
                yield from self._csharp_members(body if body is not None else child, source_bytes, top_level)
                continue
            if child.type == "declaration_list":
                yield from self._csharp_members(child, source_bytes, top_level)
                continue
            kind = _CSHARP_TYPES.get(child.type)
            if kind:
                yield self._csharp_type(child, kind, source_bytes, top_level)
            elif not top_level:
                yield from self._csharp_member(child, source_bytes)

    def _csharp_type(self, node, kind: str, source_bytes, top_level: bool) -> Member:  # type: ignore[no-untyped-def]
        body = node.child_by_field_name("body")
        children: List[Member] = []
        if body is not None and kind == "enum":
            for child in body.named_children:
                if child.type == "enum_member_declaration":
                    children.append(
                        Member(
                            name=_name_text(child, source_bytes),
                            kind="constant",
                            doc=_csharp_doc(child, source_bytes),
                        )
                    )
        elif body is not None:
            children.extend(self._csharp_members(body, source_bytes))

        signature = " ".join(
            part
            for part in (
                _field_text(node, "type_parameters", source_bytes),
                _field_text(node, "parameters", source_bytes),
                _child_text(node, "base_list", source_bytes),
            )
            if part
        )
        return Member(
            name=_name_text(node, source_bytes),
            kind=kind,
            visibility=_csharp_visibility(node, source_bytes, "internal" if top_level else "private"),
            signature=signature or None,
            doc=_csharp_doc(node, source_bytes),
            children=tuple(children),
        )

    def _csharp_member(self, node, source_bytes) -> Iterable[Member]:  # type: ignore[no-untyped-def]
        visibility = _csharp_visibility(node, source_bytes, "private")
        doc = _csharp_doc(node, source_bytes)
        if node.type in {"method_declaration", "constructor_declaration"}:
            params = _field_text(node, "parameters", source_bytes)
            returns = _field_text(node, "returns", source_bytes) or _field_text(node, "type", source_bytes)
            yield Member(
                name=_name_text(node, source_bytes),
                kind="constructor" if node.type == "constructor_declaration" else "method",
                visibility=visibility,
                signature=(f"{params} -> {returns}" if returns else params) or None,
                doc=doc,
            )
        elif node.type == "property_declaration":
            yield Member(
                name=_name_text(node, source_bytes),
                kind="property",
                visibility=visibility,
                signature=_field_text(node, "type", source_bytes) or None,
                doc=doc,
            )
        elif node.type == "field_declaration":
            for declaration in node.named_children:
                if declaration.type != "variable_declaration":
                    continue
                field_type = _field_text(declaration, "type", source_bytes)
                for declarator in declaration.named_children:
                    if declarator.type == "variable_declarator":
                        yield Member(
                            name=_name_text(declarator, source_bytes),
                            kind="field",
                            visibility=visibility,
                            signature=field_type or None,
                            doc=doc,
                        )


def _named(members: Iterable[Member]) -> tuple[Member, ...]:
    # Grammar gaps can leave a declaration without a recoverable name.
    return tuple(
        replace(member, children=_named(member.children)) for member in members if member.name
    )


def _node_text(node, source_bytes) -> str:  # type: ignore[no-untyped-def]
    return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def _field_text(node, field: str, source_bytes) -> str:  # type: ignore[no-untyped-def]
    child = node.child_by_field_name(field)
    return _node_text(child, source_bytes) if child is not None else ""


def _modifiers_text(node, source_bytes) -> str:  # type: ignore[no-untyped-def]
    for child in node.children:
        if child.type == "modifiers":
            return _node_text(child, source_bytes)
    return ""


def _java_visibility(node, source_bytes) -> str:  # type: ignore[no-untyped-def]
    words = _modifiers_text(node, source_bytes).split()
    for visibility in ("public", "protected", "private"):
        if visibility in words:
            return visibility
    return "internal"


def _java_type_signature(node, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    parts = [
        _field_text(node, field, source_bytes)
        for field in ("type_parameters", "superclass", "interfaces", "parameters")
    ]
    joined = " ".join(part for part in parts if part)
    return joined or None


def _script_member_visibility(node, name: str, source_bytes) -> str:  # type: ignore[no-untyped-def]
    if name.startswith("#"):
        return "private"
    for child in node.children:
        if child.type == "accessibility_modifier":
            return _node_text(child, source_bytes).strip()
    return "public"


def _doc_comment(node, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    previous = node.prev_named_sibling
    if previous is None or "comment" not in previous.type:
        return None
    text = _node_text(previous, source_bytes)
    if not text.startswith("/**"):
        return None
    return _clean_comment(text)


def _leading_doc(root, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    for child in root.named_children:
        if "comment" not in child.type:
            return None
        text = _node_text(child, source_bytes)
        if text.startswith("/**"):
            return _clean_comment(text)
    return None


def _name_text(node, source_bytes) -> str:  # type: ignore[no-untyped-def]
    name = _field_text(node, "name", source_bytes)
    if name:
        return name
    return _child_text(node, "identifier", source_bytes)


def _child_text(node, child_type: str, source_bytes) -> str:  # type: ignore[no-untyped-def]
    for child in node.children:
        if child.type == child_type:
            return _node_text(child, source_bytes)
    return ""


def _rust_visibility(node, source_bytes) -> str:  # type: ignore[no-untyped-def]
    modifier = _child_text(node, "visibility_modifier", source_bytes).replace(" ", "")
    if not modifier:
        return "private"
    # pub(crate), pub(super) and pub(in path) stay inside the crate.
    return "public" if modifier == "pub" else "internal"


def _rust_signature(node, kind: str, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    if kind == "function":
        params = _field_text(node, "type_parameters", source_bytes) + _field_text(node, "parameters", source_bytes)
        returns = _field_text(node, "return_type", source_bytes)
        return (f"{params} -> {returns}" if returns else params) or None
    if kind in {"constant", "static", "type"}:
        return _field_text(node, "type", source_bytes) or None
    return _field_text(node, "type_parameters", source_bytes) or None


def _rust_outer_doc(node, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    lines: List[str] = []
    sibling = node.prev_named_sibling
    while sibling is not None:
        if sibling.type == "attribute_item":
            sibling = sibling.prev_named_sibling
            continue
        text = _node_text(sibling, source_bytes).strip()
        if sibling.type == "line_comment" and text.startswith("///") and not text.startswith("////"):
            lines.append(_strip_comment_prefix(text, "///"))
            sibling = sibling.prev_named_sibling
            continue
        if sibling.type == "block_comment" and text.startswith("/**") and not lines:
            return _clean_comment(text)
        break
    return "\n".join(reversed(lines)).strip() or None


def _rust_inner_doc(root, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    lines: List[str] = []
    for child in root.named_children:
        text = _node_text(child, source_bytes).strip()
        if child.type == "line_comment" and text.startswith("//!"):
            lines.append(_strip_comment_prefix(text, "//!"))
        elif child.type == "block_comment" and text.startswith("/*!"):
            lines.append(_clean_comment(text) or "")
        else:
            break
    return "\n".join(lines).strip() or None


def _csharp_visibility(node, source_bytes, default: str) -> str:  # type: ignore[no-untyped-def]
    words: List[str] = []
    for child in node.children:
        if child.type in {"modifier", "modifiers"}:
            words.extend(_node_text(child, source_bytes).split())
    # "private protected" narrows and "protected internal" widens past internal.
    for visibility in ("public", "private", "protected", "internal"):
        if visibility in words:
            return visibility
    return default


def _csharp_doc(node, source_bytes) -> Optional[str]:  # type: ignore[no-untyped-def]
    lines: List[str] = []
    sibling = node.prev_named_sibling
    while sibling is not None and sibling.type == "comment":
        text = _node_text(sibling, source_bytes).strip()
        if not text.startswith("///"):
            break
        lines.append(_XML_TAG.sub("", _strip_comment_prefix(text, "///")).rstrip())
        sibling = sibling.prev_named_sibling
    return "\n".join(reversed(lines)).strip() or None


def _strip_comment_prefix(text: str, prefix: str) -> str:
    content = text[len(prefix):]
    return (content[1:] if content.startswith(" ") else content).rstrip()


def _clean_comment(text: str) -> Optional[str]:
    body = text[3:]
    if body.endswith("*/"):
        body = body[:-2]
    lines = []
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("*"):
            stripped = stripped[1:].strip()
        lines.append(stripped)
    cleaned = "\n".join(lines).strip()
    return cleaned or None


__all__ = ["TREE_SITTER_AVAILABLE", "TreeSitterParser"]
