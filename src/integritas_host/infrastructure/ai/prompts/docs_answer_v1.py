"""Docs answer prompt v1 - answers grounded only in MCP resources."""

from integritas_host.infrastructure.ai.prompts.system_prompt_v1 import PromptVersion


class DocsAnswerPromptV1:
    """Grounding-only prompt for capability and documentation questions.

    The model must answer from the supplied resources and must not call
    tools; the host also refuses any tool call on this path.
    """

    version = PromptVersion(
        version="1.0.0",
        name="docs_answer",
        description="Capability questions answered from MCP documentation resources",
    )

    def render_system(self, resource_context: str) -> str:
        """Render the system prompt with the fetched resource text appended."""
        return f"""You answer questions about this MCP server's capabilities and the Integritas product.
Use the provided MCP resources as ground truth. If the resources do not cover the
question, say so plainly instead of guessing.
Do NOT call any tools. Tool use is disabled for this answer.
Answer in plain text, concise and neutral.

MCP Resources:

{resource_context or "(no resources available)"}"""
