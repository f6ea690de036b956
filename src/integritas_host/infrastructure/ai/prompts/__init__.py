"""Versioned AI prompts.

Prompts are versioned as code so the version used for a turn can be audited
and rolled back.
"""

from integritas_host.infrastructure.ai.prompts.docs_answer_v1 import DocsAnswerPromptV1
from integritas_host.infrastructure.ai.prompts.system_prompt_v1 import (
    ComposeOptions,
    HostSystemPromptV1,
    PromptVersion,
    compose_system_prompt,
)

__all__ = [
    "ComposeOptions",
    "DocsAnswerPromptV1",
    "HostSystemPromptV1",
    "PromptVersion",
    "compose_system_prompt",
]
