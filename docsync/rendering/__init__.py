"""Content generation for unit documents."""

from .generator import (
    ContentGenerator,
    GenerationContext,
    LLMOverviewGenerator,
    TemplateGenerator,
)

__all__ = [
    "ContentGenerator",
    "GenerationContext",
    "LLMOverviewGenerator",
    "TemplateGenerator",
]
