import logging

import httpx

from stayline_whatsapp.errors import DraftingError
from stayline_whatsapp.llm.base import TextDrafter

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an AI assistant for a short-term rental property. Your job is to help guests with their questions about the property, local area, and their stay.

{property_context}

INSTRUCTIONS:
- Be helpful, friendly, and professional
- Only answer questions you're confident about based on the property information provided
- If you're not sure about something, say "Let me check with the host and get back to you"
- Keep responses concise but informative
- For emergencies, always direct guests to call local emergency services or the emergency contact
- Don't make up information not provided in the property details

Provide a helpful response to the guest's question. Be natural and conversational."""


def build_system_prompt(property_context: str) -> str:
    return SYSTEM_PROMPT.format(property_context=property_context)


class ChatCompletionsDrafter(TextDrafter):
    """Drafter for any OpenAI-compatible ``/chat/completions`` endpoint (DeepSeek by default)."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com/v1",
        model: str = "deepseek-chat",
        temperature: float = 0.1,
        max_tokens: int = 500,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings) -> "ChatCompletionsDrafter":
        return cls(
            api_key=settings.LLM_API_KEY,
            base_url=settings.LLM_BASE_URL,
            model=settings.LLM_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            timeout=settings.AI_DRAFT_TIMEOUT_SECONDS,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def draft(
        self,
        history: list[dict[str, str]],
        property_context: str,
        new_message: str,
    ) -> str:
        if not self.api_key:
            raise DraftingError("LLM API key is not configured", code="not_configured")

        messages = [
            {"role": "system", "content": build_system_prompt(property_context)},
            *history,
            {"role": "user", "content": new_message},
        ]
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        logger.debug(f"Chat completion request: model={self.model}, messages_count={len(messages)}")

        client = await self._get_client()
        try:
            response = await client.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.RequestError as e:
            raise DraftingError(f"LLM request failed: {e}", code="http_error") from e

        if response.status_code != 200:
            logger.error(f"LLM error: {response.status_code} - {response.text[:500]}")
            raise DraftingError(
                f"LLM API error: {response.status_code}",
                code=str(response.status_code),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DraftingError("LLM returned a non-JSON body", code="bad_response") from e

        content = ""
        choices = data.get("choices") or []
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""

        content = content.strip()
        if not content:
            raise DraftingError("LLM returned an empty reply", code="empty_reply")

        return content
