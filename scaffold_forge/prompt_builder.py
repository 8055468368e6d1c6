"""Prompt rendering for the generative agents.

Each agent has an instruction template containing the reserved placeholder
``{CHAT_BOT_CONTENT}``.  Rendering replaces every occurrence of that token with
the user's prompt, inserted verbatim (no escaping) apart from any copies of the
token itself, which are removed so the rendered text never carries it.  No
other substitution is performed, so templates may freely contain braces and
code samples.
"""

from __future__ import annotations

from scaffold_forge.gemini_client import BinaryPart
from scaffold_forge.scaffolder.templates import TemplateRenderer

PLACEHOLDER = "{CHAT_BOT_CONTENT}"

SCAFFOLD_TEMPLATE = "instructions.md"
SPEC_TEMPLATE = "instructions-spec.md"
SPEC_REFERENCE_TEMPLATE = "agent-template.md"


def strip_placeholder(prompt: str) -> str:
    """Remove every placeholder token from *prompt*, including ones formed by removal."""
    while PLACEHOLDER in prompt:
        prompt = prompt.replace(PLACEHOLDER, "")
    return prompt


class PromptBuilder:
    """Renders agent prompts from the template directory."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    def build(self, template_name: str, prompt: str) -> str:
        """Load *template_name* and replace every placeholder with *prompt*.

        Raises:
            TemplateNotFound: If the template cannot be located.
            RenderError: If the template is not decodable text.
        """
        template = self.renderer.get_source(template_name)
        return template.replace(PLACEHOLDER, strip_placeholder(prompt))

    def attachment(self, template_name: str, mime_type: str = "text/plain") -> BinaryPart:
        """Return a template file as a binary attachment part."""
        return BinaryPart(data=self.renderer.get_bytes(template_name), mime_type=mime_type)
