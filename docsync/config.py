"""Configuration loading for docsync (.docsync.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

import yaml

from .errors import ConfigError

CONFIG_FILENAMES: Tuple[str, ...] = (".docsync.yml", ".docsync.yaml")

DEFAULT_LANGUAGES: Tuple[str, ...] = ("python", "java", "javascript", "typescript", "rust", "csharp")


@dataclass(frozen=True)
class ProjectConfig:
    """Project identity and the directories docsync reads from and writes to."""

    name: Optional[str] = None
    source_dirs: Tuple[str, ...] = ("src",)
    docs_dir: str = "docs"
    exclude_paths: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsingConfig:
    """Which languages are parsed and how large a source file may be."""

    languages: Tuple[str, ...] = DEFAULT_LANGUAGES
    max_file_size: int = 1024 * 1024


@dataclass(frozen=True)
class FingerprintConfig:
    """Hash algorithm and the unit kinds whose member order is significant."""

    algorithm: str = "sha256"
    order_sensitive_kinds: FrozenSet[str] = frozenset()

    def is_order_sensitive(self, kind: str) -> bool:
        return kind.lower() in self.order_sensitive_kinds


@dataclass(frozen=True)
class GenerationConfig:
    """Which documents are produced and how much runs in parallel."""

    package_docs: bool = True
    file_docs: bool = True
    max_workers: int = 4
    generator_concurrency: int = 2


@dataclass(frozen=True)
class TemplateConfig:
    """Template overrides for the built-in generator."""

    template_dir: Optional[Path] = None
    settings: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LLMConfig:
    """LLM overview enhancement settings."""

    enabled: bool = False
    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    request_timeout: Optional[float] = None
    max_retries: int = 2


@dataclass(frozen=True)
class DocSyncConfig:
    """Immutable settings for one docsync run, passed explicitly to components."""

    root: Path
    project: ProjectConfig = field(default_factory=ProjectConfig)
    parsing: ParsingConfig = field(default_factory=ParsingConfig)
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    templates: TemplateConfig = field(default_factory=TemplateConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    config_path: Optional[Path] = None

    @property
    def project_name(self) -> str:
        return self.project.name or self.root.name or "Project"

    @property
    def docs_path(self) -> Path:
        return (self.root / self.project.docs_dir).resolve()

    @property
    def source_paths(self) -> List[Path]:
        return [(self.root / entry).resolve() for entry in self.project.source_dirs]


def find_config_file(path: Path) -> Optional[Path]:
    """Return the config file for ``path`` (a directory or a file), if one exists."""
    path = path.expanduser()
    if path.is_file():
        return path.resolve()
    directory = path if path.is_dir() or not path.suffix else path.parent
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.exists():
            return candidate.resolve()
    return None


def load_config(path: Path, *, config_file: Path | None = None) -> DocSyncConfig:
    """Load configuration for the project rooted at ``path``.

    ``config_file`` points at an explicit file (``docsync -c``); otherwise the
    project root is searched for ``.docsync.yml``. A missing file yields the
    defaults.
    """
    path = path.expanduser()
    root = (path if path.is_dir() or not path.suffix else path.parent).resolve()

    resolved = config_file.expanduser().resolve() if config_file else find_config_file(path)
    if resolved is None:
        return DocSyncConfig(root=root)
    if not resolved.exists():
        raise ConfigError(f"Configuration file not found: {resolved}")
    if config_file is None:
        root = resolved.parent

    data = _read_config(resolved)
    if not isinstance(data, dict):
        raise ConfigError(f"{resolved.name} must contain a mapping at the root")

    project_data = _as_dict(data.get("project"), "project")
    project = ProjectConfig(
        name=_as_str(project_data.get("name")),
        source_dirs=tuple(_as_str_list(project_data.get("source_dirs"))) or ProjectConfig.source_dirs,
        docs_dir=_as_str(project_data.get("docs_dir")) or ProjectConfig.docs_dir,
        exclude_paths=tuple(_as_str_list(project_data.get("exclude_paths"))),
    )

    parsing_data = _as_dict(data.get("parsing"), "parsing")
    languages = [language.lower() for language in _as_str_list(parsing_data.get("languages"))]
    parsing = ParsingConfig(
        languages=tuple(languages) or DEFAULT_LANGUAGES,
        max_file_size=_as_int(parsing_data.get("max_file_size"), "parsing.max_file_size")
        or ParsingConfig.max_file_size,
    )

    fingerprint_data = _as_dict(data.get("fingerprint"), "fingerprint")
    fingerprint = FingerprintConfig(
        algorithm=(_as_str(fingerprint_data.get("algorithm")) or FingerprintConfig.algorithm).lower(),
        order_sensitive_kinds=frozenset(
            kind.lower() for kind in _as_str_list(fingerprint_data.get("order_sensitive_kinds"))
        ),
    )

    generation_data = _as_dict(data.get("generation"), "generation")
    defaults = GenerationConfig()
    generation = GenerationConfig(
        package_docs=_as_bool(generation_data.get("package_docs"), defaults.package_docs),
        file_docs=_as_bool(generation_data.get("file_docs"), defaults.file_docs),
        max_workers=_positive(
            _as_int(generation_data.get("max_workers"), "generation.max_workers"),
            defaults.max_workers,
            "generation.max_workers",
        ),
        generator_concurrency=_positive(
            _as_int(generation_data.get("generator_concurrency"), "generation.generator_concurrency"),
            defaults.generator_concurrency,
            "generation.generator_concurrency",
        ),
    )

    template_data = _as_dict(data.get("templates"), "templates")
    template_dir_str = _as_str(template_data.get("template_dir"))
    settings_data = _as_dict(template_data.get("settings"), "templates.settings")
    templates = TemplateConfig(
        template_dir=(root / template_dir_str) if template_dir_str else None,
        settings={str(key): str(value) for key, value in settings_data.items() if value is not None},
    )

    llm_data = _as_dict(data.get("llm"), "llm")
    llm = LLMConfig(
        enabled=_as_bool(llm_data.get("enabled"), False),
        model=_as_str(llm_data.get("model")),
        base_url=_as_str(llm_data.get("base_url")),
        api_key=_as_str(llm_data.get("api_key")),
        temperature=_as_float(llm_data.get("temperature"), "llm.temperature"),
        max_tokens=_as_int(llm_data.get("max_tokens"), "llm.max_tokens"),
        request_timeout=_as_float(llm_data.get("request_timeout"), "llm.request_timeout"),
        max_retries=_non_negative(
            _as_int(llm_data.get("max_retries"), "llm.max_retries"), LLMConfig.max_retries, "llm.max_retries"
        ),
    )

    return DocSyncConfig(
        root=root,
        project=project,
        parsing=parsing,
        fingerprint=fingerprint,
        generation=generation,
        templates=templates,
        llm=llm,
        config_path=resolved,
    )


def render_default_config(project_name: str) -> str:
    """Return the YAML written by ``docsync init``."""
    payload = {
        "project": {
            "name": project_name,
            "source_dirs": list(ProjectConfig.source_dirs),
            "docs_dir": ProjectConfig.docs_dir,
            "exclude_paths": [],
        },
        "parsing": {"languages": list(DEFAULT_LANGUAGES)},
        "fingerprint": {"algorithm": FingerprintConfig.algorithm, "order_sensitive_kinds": []},
        "generation": {
            "package_docs": True,
            "file_docs": True,
            "max_workers": GenerationConfig.max_workers,
            "generator_concurrency": GenerationConfig.generator_concurrency,
        },
        "llm": {"enabled": False},
    }
    return yaml.safe_dump(payload, sort_keys=False)


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any, key: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any, key: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
    raise ConfigError(f"'{key}' must be a number")


def _as_int(value: Any, key: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
    raise ConfigError(f"'{key}' must be an integer")


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float)) and not isinstance(item, bool)]
    return []


def _positive(value: Optional[int], default: int, key: str) -> int:
    if value is None:
        return default
    if value < 1:
        raise ConfigError(f"'{key}' must be at least 1")
    return value


def _non_negative(value: Optional[int], default: int, key: str) -> int:
    if value is None:
        return default
    if value < 0:
        raise ConfigError(f"'{key}' must not be negative")
    return value


__all__ = [
    "CONFIG_FILENAMES",
    "ConfigError",
    "DocSyncConfig",
    "FingerprintConfig",
    "GenerationConfig",
    "LLMConfig",
    "ParsingConfig",
    "ProjectConfig",
    "TemplateConfig",
    "find_config_file",
    "load_config",
    "render_default_config",
]
