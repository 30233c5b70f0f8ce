"""Prompt templates for generator-backed memory operations."""

import string
from dataclasses import dataclass, field
from typing import Mapping

from memvault.errors import InvalidArgumentError


def _extract_variables(template: str) -> list[str]:
    names = []
    for _, name, _, _ in string.Formatter().parse(template):
        if name and name not in names:
            names.append(name)
    return names


@dataclass(frozen=True)
class PromptTemplate:
    """A named template with ``{variable}`` placeholders."""

    name: str
    template: str
    variables: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", tuple(_extract_variables(self.template)))

    def render(self, variables: Mapping[str, str]) -> str:
        """Fill every placeholder.

        Raises:
            InvalidArgumentError: If a placeholder has no value.
        """
        missing = [name for name in self.variables if name not in variables]
        if missing:
            raise InvalidArgumentError(
                f"Missing variable(s) for prompt {self.name}: {', '.join(missing)}"
            )
        return self.template.format(**{name: variables[name] for name in self.variables})


DEFAULT_TEMPLATES = {
    "extract_facts": (
        "Extract key facts from the following conversation. "
        "Return one fact per line, each starting with '- '.\n\n"
        "{conversation}\n\nFacts:"
    ),
    "generate_insights": (
        "Based on the following facts about the user:\n\n{facts}\n\n"
        "Generate insights about their preferences and behavior:\n\nInsights:"
    ),
    "summarize_memories": (
        "Summarize the following memories into a concise profile:\n\n{memories}\n\nSummary:"
    ),
    "answer_with_context": (
        "Answer the following question based on the provided context:\n\n"
        "Context:\n{context}\n\nQuestion: {question}\n\nAnswer:"
    ),
    "classify_memory": (
        "Classify the following text into one of these categories: "
        "fact, preference, insight, goal, or other.\n\nText: {text}\n\nCategory:"
    ),
}


class PromptManager:
    """Registry of prompt templates, preloaded with the defaults."""

    def __init__(self) -> None:
        self._templates: dict[str, PromptTemplate] = {}
        for name, template in DEFAULT_TEMPLATES.items():
            self.register(PromptTemplate(name, template))

    def register(self, template: PromptTemplate) -> None:
        self._templates[template.name] = template

    def get(self, name: str) -> PromptTemplate | None:
        return self._templates.get(name)

    def render(self, name: str, variables: Mapping[str, str]) -> str:
        template = self.get(name)
        if template is None:
            raise InvalidArgumentError(f"Prompt template not found: {name}")
        return template.render(variables)

    def list_templates(self) -> list[str]:
        return sorted(self._templates)

    def __len__(self) -> int:
        return len(self._templates)
