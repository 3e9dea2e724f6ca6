"""Instruction template management."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PromptTemplate:
    """Immutable instruction policy sent ahead of the evidence parts."""

    name: str
    version: str
    instruction: str
    # Key under which the reply carries its explanation text.
    explanation_field: str = "analysis"


class PromptRegistry:
    """Versioned template store."""

    def __init__(self):
        self._templates: dict[tuple[str, str], PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        """Register a template."""
        key = (template.name, template.version)
        self._templates[key] = template

    def get(self, name: str, version: str) -> PromptTemplate | None:
        """Get template by name and version."""
        return self._templates.get((name, version))

    def list_versions(self, name: str) -> list[str]:
        """List all versions for a template name."""
        return [v for (n, v), _ in self._templates.items() if n == name]
