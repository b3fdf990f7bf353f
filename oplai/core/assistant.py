"""AI assistant: chat about the user's own playbooks, answers and prompts.

The whole account is dumped into the system message as plain text. There is
no chunking, so very large accounts can exceed the model's context window.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from oplai.core.generation import LLMGateway, get_gateway
from oplai.core.playbooks import PlaybookStore
from oplai.core.prompts import PromptManager
from oplai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()

ASSISTANT_PROMPT = """You are an AI assistant helping users understand and manage their playbooks, questions, answers, and system prompts.

Here is the complete context about the user's data:
{context}

Be helpful, concise, and accurate. When the user asks about their data, refer to the specific information provided above. If asked about something that doesn't exist in their data, let them know clearly.

You can help with:
- Summarizing playbooks and their contents
- Listing questions and their answers
- Showing answer scores
- Explaining system prompts and their versions
- Analyzing patterns in their data
- Providing insights and suggestions"""


def _describe_playbook(playbook: dict[str, Any], questions: list[dict[str, Any]]) -> list[str]:
    lines = [
        f'\n## Playbook: "{playbook["title"]}" (ID: {playbook["id"]})',
        f"Created: {playbook.get('created_at')}",
    ]
    if playbook.get("content"):
        lines.append(f"Content: {playbook['content']}")
    lines.append(f"Questions count: {len(questions)}")
    if questions:
        lines.append("\nQuestions for this playbook:")
    for q in questions:
        lines.append(f'  - Question: "{q["question"]}"')
        if q["answer"]:
            lines.append(f'    Answer: "{q["answer"]}"')
            if q["score"] is not None:
                lines.append(f"    Score: {q['score']}")
        else:
            lines.append("    (No answer provided yet)")
    return lines


class AssistantService:
    def __init__(self, db: SupabaseClient, gateway: LLMGateway) -> None:
        self.playbooks = PlaybookStore(db)
        self.prompts = PromptManager(db)
        self.gateway = gateway

    def build_context(self, user_id: str) -> str:
        parts: list[str] = []
        playbooks = self.playbooks.list_owned(user_id)
        if playbooks:
            parts.append(f"\n# User's Playbooks ({len(playbooks)} total):")
            for pb in playbooks:
                parts.extend(_describe_playbook(pb, self.playbooks.load_questions(str(pb["id"]))))
        else:
            parts.append("\nNo playbooks created yet.")

        prompts = self.prompts.list_prompts(user_id)
        if prompts:
            parts.append(f"\n\n# System Prompts ({len(prompts)} total):")
            for p in prompts:
                versions = self.prompts.history(str(p["id"]))
                parts.append(f'\n## Prompt: "{p["name"]}" (Type: {p["type"]})')
                parts.append(f"Active: {'Yes' if p.get('is_active') else 'No'}")
                parts.append(f"Versions count: {len(versions)}")
                if versions:
                    parts.append("Latest versions:")
                for v in versions[:3]:
                    parts.append(f"  - Version {v['version_number']}:")
                    parts.append(f"    Content: {v['content']}")
                    parts.append(f"    Created: {v.get('created_at')}")
        else:
            parts.append("\n\nNo system prompts created yet.")
        return "\n".join(parts)

    async def chat(
        self,
        user_id: str,
        message: str,
        conversation_history: list[dict[str, str]] | None = None,
    ) -> str:
        context = self.build_context(user_id)
        logger.info("assistant.chat", user_id=user_id, context_chars=len(context))
        return await self.gateway.complete(
            ASSISTANT_PROMPT.format(context=context),
            [*(conversation_history or []), {"role": "user", "content": message}],
            temperature=0.7,
            max_tokens=2000,
        )


@lru_cache
def get_assistant_service() -> AssistantService:
    """Get cached assistant service."""
    return AssistantService(get_supabase_client(), get_gateway())
