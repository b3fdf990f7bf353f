"""Question and answer generation through a remote LLM.

Three providers are supported: the default OpenAI-compatible gateway,
OpenAI itself, and Anthropic. Calls are single-shot; a failed call is
reported to the caller and never retried.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Any, Iterable

import httpx
import structlog

from oplai.config import Settings, get_settings

logger = structlog.get_logger()

DEFAULT_QUESTION_COUNT = 8
MAX_QUESTION_COUNT = 50

DEFAULT_QUESTION_PROMPT = (
    "You are a helpful assistant that generates questions. Analyze the provided text and "
    "generate {count} questions that end users would ask about the facts, content, and subject "
    "matter presented in the text. Focus on the actual content, NOT meta-questions about the "
    "document itself. Return ONLY a JSON array of strings, nothing else."
)

DEFAULT_ANSWER_PROMPT = (
    "You are a helpful assistant that answers questions using only the provided text. "
    "Answer clearly and concisely. If the text does not contain the answer, say so."
)

SYSTEM_PROMPT_WRITER = """You are an expert in creating structured system prompts for AI assistants. Create a comprehensive, well-structured system prompt for {type} generation.

The prompt should include these sections:
1. **Role Definition**: Clearly define the AI's role and expertise
2. **Task Description**: Explain what the AI should do
3. **Output Format**: Specify exact format requirements
4. **Best Practices**: Include guidelines for high-quality output
5. **Restrictions**: List what the AI should NOT do
6. **Considerations**: Important factors to keep in mind
7. **Examples** (if applicable): Brief examples of good output

Format the prompt in a clear, hierarchical structure using markdown formatting."""

EMPTY_DOCUMENT_MESSAGE = (
    "Please add content to your playbook before generating questions. "
    "The knowledge base is empty."
)

_TAG_RE = re.compile(r"<[^>]*>")
_FENCE_RE = re.compile(r"```(?:json)?\s*")
_BRACKET_ONLY_RE = re.compile(r"^[\[\]{}]$")


class GatewayError(Exception):
    """The LLM gateway refused or failed a request."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(GatewayError):
    def __init__(self) -> None:
        super().__init__("Rate limit exceeded. Please try again later.", 429)


class PaymentRequiredError(GatewayError):
    def __init__(self) -> None:
        super().__init__("Payment required. Please add credits to your AI workspace.", 402)


class EmptyDocumentError(ValueError):
    pass


def html_to_text(markup: str) -> str:
    """Flatten rich-text markup to a single line of plain text."""
    text = _TAG_RE.sub(" ", markup or "")
    text = text.replace("&nbsp;", " ")
    return " ".join(text.split())


def _is_question_like(line: str) -> bool:
    line = line.strip()
    return len(line) > 3 and not _BRACKET_ONLY_RE.match(line) and not line.startswith("```")


def parse_questions(reply: str, count: int = DEFAULT_QUESTION_COUNT) -> list[str]:
    """Pull a question list out of an LLM reply.

    A JSON array is preferred. Anything else is split into lines with list
    markers and wrapping quotes stripped, then cut to ``count``.
    """
    cleaned = _FENCE_RE.sub("", reply or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, list):
        return [q.strip() for q in parsed if isinstance(q, str) and _is_question_like(q)]

    questions = []
    for line in cleaned.splitlines():
        if not _is_question_like(line):
            continue
        line = re.sub(r"^\d+\.\s*", "", line.strip())
        line = re.sub(r"^[-*]\s*", "", line)
        line = re.sub(r"^[\"']|[\"',]+$", "", line).strip()
        if line:
            questions.append(line)
    return questions[:count]


class LLMGateway:
    """Thin async client over the supported chat-completion providers."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._timeout = timeout

    def _build_request(
        self, provider: str, system: str, messages: list[dict[str, str]], params: dict[str, Any]
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        s = self.settings
        if provider == "openai":
            if not s.openai_api_key:
                raise GatewayError("OPENAI_API_KEY is not configured")
            return (
                "https://api.openai.com/v1/chat/completions",
                {"Authorization": f"Bearer {s.openai_api_key}"},
                {
                    "model": s.openai_model,
                    "messages": [{"role": "system", "content": system}, *messages],
                    **params,
                },
            )
        if provider == "anthropic":
            if not s.anthropic_api_key:
                raise GatewayError("ANTHROPIC_API_KEY is not configured")
            return (
                "https://api.anthropic.com/v1/messages",
                {"x-api-key": s.anthropic_api_key, "anthropic-version": "2023-06-01"},
                {
                    "model": s.anthropic_model,
                    "max_tokens": params.pop("max_tokens", 1024),
                    "system": system,
                    "messages": messages,
                    **params,
                },
            )
        if not s.llm_gateway_key:
            raise GatewayError("LLM_GATEWAY_KEY is not configured")
        return (
            f"{s.llm_gateway_url.rstrip('/')}/chat/completions",
            {"Authorization": f"Bearer {s.llm_gateway_key}"},
            {
                "model": s.llm_gateway_model,
                "messages": [{"role": "system", "content": system}, *messages],
                **params,
            },
        )

    async def complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        provider: str | None = None,
        **params: Any,
    ) -> str:
        """Send one chat request and return the reply text."""
        provider = provider or self.settings.default_llm_provider
        url, headers, body = self._build_request(provider, system, messages, dict(params))
        logger.info("llm.request", provider=provider, messages=len(messages))

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(url, headers=headers, json=body)

        if resp.status_code == 429:
            raise RateLimitError()
        if resp.status_code == 402:
            raise PaymentRequiredError()
        if resp.status_code >= 400:
            logger.error("llm.error", provider=provider, status=resp.status_code, body=resp.text[:500])
            raise GatewayError(f"AI gateway error: {resp.status_code}", 500)

        data = resp.json()
        if provider == "anthropic":
            return data["content"][0]["text"]
        return data["choices"][0]["message"]["content"]


class GenerationService:
    """Generates evaluation questions and answers for playbook content."""

    def __init__(self, gateway: LLMGateway) -> None:
        self.gateway = gateway

    async def generate_questions(
        self,
        document_content: str,
        custom_system_prompt: str | None = None,
        llm_provider: str | None = None,
        count: int = DEFAULT_QUESTION_COUNT,
        documents: Iterable[str] = (),
    ) -> list[str]:
        text = html_to_text(document_content)
        extra = [d.strip() for d in documents if d and d.strip()]
        if extra:
            text = "\n\n".join([text, *extra])
        if len(text) < 10:
            raise EmptyDocumentError(EMPTY_DOCUMENT_MESSAGE)

        logger.info("generation.questions", length=len(text), provider=llm_provider, count=count)
        reply = await self.gateway.complete(
            custom_system_prompt or DEFAULT_QUESTION_PROMPT.format(count=count),
            [
                {
                    "role": "user",
                    "content": (
                        f"Generate {count} questions that users would ask about the facts "
                        f"and content in this text:\n\n{text}"
                    ),
                }
            ],
            provider=llm_provider,
        )
        questions = parse_questions(reply, count)
        logger.info("generation.questions_parsed", count=len(questions))
        return questions

    async def get_answer(
        self,
        document_content: str,
        question: str,
        custom_system_prompt: str | None = None,
        llm_provider: str | None = None,
    ) -> str:
        if not question or not question.strip():
            raise ValueError("Question is required")
        text = html_to_text(document_content)
        if not text:
            raise EmptyDocumentError(EMPTY_DOCUMENT_MESSAGE)

        return await self.gateway.complete(
            custom_system_prompt or DEFAULT_ANSWER_PROMPT,
            [{"role": "user", "content": f"Text:\n\n{text}\n\nQuestion: {question.strip()}"}],
            provider=llm_provider,
        )

    async def generate_system_prompt(self, prompt_type: str, context: str | None = None) -> str:
        if context:
            user = f"Create a system prompt for {prompt_type} generation. Context: {context}"
        else:
            user = (
                f"Create a professional system prompt for {prompt_type} generation that will "
                "help generate high-quality, relevant, and accurate results."
            )
        return await self.gateway.complete(
            SYSTEM_PROMPT_WRITER.format(type=prompt_type),
            [{"role": "user", "content": user}],
        )


@lru_cache
def get_gateway() -> LLMGateway:
    """Get cached LLM gateway."""
    return LLMGateway(get_settings())


@lru_cache
def get_generation_service() -> GenerationService:
    """Get cached generation service."""
    return GenerationService(get_gateway())
