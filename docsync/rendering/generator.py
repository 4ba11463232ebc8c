"""Content generators that produce the fresh body of a unit's document."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, TemplateError

from ..core.protector import ProtectedRegionExtractor
from ..errors import GenerationFailed
from ..llm import LLMRunner
from ..logging import get_logger
from ..models import UNIT_KIND_PACKAGE, DocumentedUnit, Member

UNIT_TEMPLATE = "unit.md.j2"
PACKAGE_TEMPLATE = "package.md.j2"


@dataclass(frozen=True)
class GenerationContext:
    """Project-wide values available to every generator call."""

    project_name: str
    docs_dir: Optional[Path] = None
    settings: Dict[str, str] = field(default_factory=dict)


class ContentGenerator(Protocol):
    """Produces a markdown body (no metadata header) for one unit.

    Bodies may embed protected blocks; those act as the default content of
    their slot until a human edits them.
    """

    name: str

    def generate(self, unit: DocumentedUnit, context: GenerationContext) -> str:
        ...


class TemplateGenerator:
    """Renders documents from Jinja2 templates.

    A ``template_dir`` is searched before the built-in templates, so a project
    can override ``unit.md.j2`` or ``package.md.j2`` individually.
    """

    name = "template"

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = template_dir
        self._env = self._create_env(template_dir)

    def generate(self, unit: DocumentedUnit, context: GenerationContext) -> str:
        template_name = PACKAGE_TEMPLATE if unit.kind == UNIT_KIND_PACKAGE else UNIT_TEMPLATE
        try:
            template = self._env.get_template(template_name)
            rendered = template.render(
                unit=unit,
                project_name=context.project_name,
                settings=context.settings,
                members=_documented_members(unit.members),
                hidden_count=sum(1 for member in unit.members if member.visibility == "private"),
            )
        except TemplateError as exc:
            raise GenerationFailed(f"{unit.identity}: template rendering failed: {exc}") from exc
        return rendered.strip() + "\n"

    @staticmethod
    def _create_env(template_dir: Path | None) -> Environment:
        directories: List[str] = []
        if template_dir:
            directories.append(str(template_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        env.globals["protect"] = _protect
        env.filters["doc_link"] = _doc_link
        env.filters["doc_text"] = _doc_text
        return env


class LLMOverviewGenerator:
    """Wraps another generator and adds a model-written overview below the title."""

    SYSTEM_PROMPT = (
        "You write short technical overviews for source code documentation. "
        "Describe what the code is for in two or three sentences of plain prose. "
        "Never invent names that are not in the outline."
    )

    def __init__(self, base: ContentGenerator, runner: LLMRunner) -> None:
        self.base = base
        self.runner = runner
        self.name = f"{base.name}+llm"
        self.logger = get_logger("rendering.llm")

    def generate(self, unit: DocumentedUnit, context: GenerationContext) -> str:
        body = self.base.generate(unit, context)
        try:
            summary = self.runner.run(_outline(unit, context), system=self.SYSTEM_PROMPT)
        except RuntimeError as exc:
            raise GenerationFailed(f"{unit.identity}: overview generation failed: {exc}") from exc

        # Generated prose must never introduce marker lines of its own.
        lines = [line for line in summary.strip().splitlines() if not line.lstrip().startswith("<!--")]
        cleaned = "\n".join(lines).strip()
        if not cleaned:
            self.logger.debug("%s: empty overview from model; keeping template body", unit.identity)
            return body
        return _insert_after_title(body, cleaned)


def _protect(label: str, content: str = "") -> str:
    return ProtectedRegionExtractor.protect(content, label)


def _doc_text(text: Optional[str]) -> str:
    # Source comments may quote marker syntax; it must stay prose in the body.
    return ProtectedRegionExtractor.neutralise((text or "").strip())


def _doc_link(child: DocumentedUnit, package: DocumentedUnit) -> str:
    prefix = f"{package.identity}/"
    relative = child.identity[len(prefix):] if child.identity.startswith(prefix) else child.identity
    return f"{package.display_name}/{relative}.md"


def _documented_members(members: tuple[Member, ...]) -> List[Member]:
    return [member for member in members if member.visibility != "private"]


def _outline(unit: DocumentedUnit, context: GenerationContext) -> str:
    lines = [
        f"Project: {context.project_name}",
        f"Unit: {unit.identity} ({unit.kind}, {unit.language or 'mixed'})",
    ]
    if unit.doc:
        lines.append(f"Existing description: {unit.doc.strip()}")
    for member in unit.members:
        lines.append(f"- {member.kind} {member.name}{member.signature or ''}")
        for child in member.children:
            lines.append(f"  - {child.kind} {child.name}{child.signature or ''}")
    for child_unit in unit.children:
        lines.append(f"- {child_unit.kind} {child_unit.identity}")
    return "\n".join(lines)


def _insert_after_title(body: str, summary: str) -> str:
    lines = body.splitlines(keepends=True)
    for index, line in enumerate(lines):
        if line.startswith("# "):
            head = "".join(lines[: index + 1])
            tail = "".join(lines[index + 1 :])
            return f"{head}\n{summary}\n{tail}"
    return f"{summary}\n\n{body}"


__all__ = [
    "ContentGenerator",
    "GenerationContext",
    "LLMOverviewGenerator",
    "PACKAGE_TEMPLATE",
    "TemplateGenerator",
    "UNIT_TEMPLATE",
]
