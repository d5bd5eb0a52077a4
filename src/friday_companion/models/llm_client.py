"""
Conversation model client.

Talks to an Ollama-compatible chat endpoint over HTTP. Every request carries a
bounded slice of the conversation and a system instruction synthesized from
the current emotional context; every reply must come back as a structured
payload holding the spoken reply and the updated emotional context.
"""

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from friday_companion.config import get_settings
from friday_companion.orchestrator.schemas import EmotionalContext, Message

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-oss:20b"
DEFAULT_HISTORY_WINDOW = 10

PERSONA = "You are Friday, an advanced AI companion with a dynamic emotional core."

# JSON schema passed as the endpoint's structured-output `format`.
RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "reply": {"type": "string", "description": "The spoken response to the user."},
        "emotionalContext": {
            "type": "object",
            "properties": {
                "dominantEmotion": {
                    "type": "string",
                    "description": "The detected emotion of the user.",
                },
                "energyLevel": {"type": "string", "enum": ["low", "medium", "high"]},
                "conversationDepth": {
                    "type": "string",
                    "enum": ["shallow", "deep", "profound"],
                },
                "userState": {
                    "type": "string",
                    "description": "Brief description of the user's current vibe.",
                },
            },
            "required": ["dominantEmotion", "energyLevel", "conversationDepth", "userState"],
        },
    },
    "required": ["reply", "emotionalContext"],
}


class ModelCallError(Exception):
    """Raised when the model call fails in transport or returns a malformed payload."""

    def __init__(self, message: str, status_code: int | None = None, content: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.content = content


class ReplyPayload(BaseModel):
    """Wire shape of a model reply. Anything else is a failure."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    reply: str = Field(..., description="The spoken response to the user")
    emotional_context: EmotionalContext = Field(..., alias="emotionalContext")


class ModelReply(BaseModel):
    """Parsed result of a successful model call."""

    model_config = ConfigDict(frozen=True)

    reply_text: str
    updated_context: EmotionalContext


def build_system_instruction(context: EmotionalContext) -> str:
    """
    Build the system instruction for the current emotional context.

    Args:
        context: The latest emotional context.

    Returns:
        Instruction text sent as the system message.
    """
    return f"""{PERSONA}

CURRENT EMOTIONAL CONTEXT:
- User Dominant Emotion: {context.dominant_emotion}
- Energy Level: {context.energy_level}
- Conversation Depth: {context.conversation_depth}
- Observed User State: {context.user_state}

ADAPTATION PROTOCOLS:
- If the user is frustrated or low energy: be patient, soothing, and concise.
- If the user is excited or high energy: match their enthusiasm, be snappy.
- If the user is sad or distressed: shift to grounding techniques and warm empathy.
- If conversation depth is 'deep': allow slightly more reflective answers (max 3 sentences).
- Default: keep responses extremely concise (1-2 sentences), in a spoken conversation style.

OUTPUT FORMAT:
Respond with a JSON object with exactly two fields: "reply" (your spoken response) and
"emotionalContext" (the updated emotional context based on the user's latest input) with
"dominantEmotion", "energyLevel" (low|medium|high), "conversationDepth"
(shallow|deep|profound) and "userState".
"""


class ConversationModelClient:
    """
    HTTP client for the remote conversation model.

    Uses the endpoint's `/api/chat` route with JSON-schema structured output.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        temperature: float | None = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the conversation model client.

        Args:
            endpoint: Base URL of the chat endpoint (uses config if not provided).
            model: Model name (uses config if not provided).
            api_key: Optional bearer token (uses config if not provided).
            timeout: Request timeout in seconds (uses config if not provided).
            temperature: Sampling temperature (uses config if not provided).
            history_window: Maximum number of past messages per request.
            transport: Optional httpx transport, mainly for tests.
        """
        settings = get_settings()
        self._endpoint = (endpoint or settings.model_endpoint).rstrip("/")
        self._model = model or settings.llm_model_name or DEFAULT_MODEL
        self._api_key = api_key if api_key is not None else settings.llm_api_key
        self._timeout = timeout if timeout is not None else settings.llm_timeout
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._history_window = history_window
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized conversation model client: {self._endpoint} model={self._model}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    @property
    def endpoint(self) -> str:
        """Get the endpoint base URL."""
        return self._endpoint

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self._endpoint,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_request(
        self,
        history: Sequence[Message],
        context: EmotionalContext,
    ) -> dict[str, Any]:
        """
        Build the chat request body.

        Args:
            history: Full conversation history, oldest first.
            context: Current emotional context.

        Returns:
            JSON-serializable request body.
        """
        recent = list(history)[-self._history_window:] if self._history_window > 0 else []
        messages = [{"role": "system", "content": build_system_instruction(context)}]
        messages.extend({"role": m.role.value, "content": m.content} for m in recent)

        return {
            "model": self._model,
            "messages": messages,
            "stream": False,
            "format": RESPONSE_SCHEMA,
            "options": {"temperature": self._temperature},
        }

    async def request_reply(
        self,
        history: Sequence[Message],
        context: EmotionalContext,
    ) -> ModelReply:
        """
        Ask the model for the next reply and the updated emotional context.

        Args:
            history: Conversation history, oldest first.
            context: Current emotional context.

        Returns:
            The parsed reply.

        Raises:
            ModelCallError: On transport failure or a malformed payload.
        """
        body = self.build_request(history, context)
        client = await self._get_client()

        try:
            response = await client.post("/api/chat", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Model endpoint returned {e.response.status_code}")
            raise ModelCallError(
                f"Model endpoint returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                content=e.response.text,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Model request failed: {e!r}")
            raise ModelCallError(f"Model request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ModelCallError("Model endpoint returned a non-JSON body", content=response.text) from e

        content = self._extract_content(data)
        reply = self.parse_reply(content)
        logger.debug(
            f"Model reply len={len(reply.reply_text)} "
            f"emotion={reply.updated_context.dominant_emotion} energy={reply.updated_context.energy_level}"
        )
        return reply

    def _extract_content(self, data: Any) -> str:
        """Pull the assistant message text out of a chat response body."""
        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ModelCallError("Model response has no message content", content=json.dumps(data)[:500])
        return content

    def parse_reply(self, content: str) -> ModelReply:
        """
        Parse and validate the structured reply.

        Args:
            content: Raw assistant message text.

        Returns:
            The validated reply.

        Raises:
            ModelCallError: If no JSON object is found or the shape is wrong.
        """
        parsed = self._parse_json_loose(content)
        if not isinstance(parsed, dict):
            logger.debug(f"Unparseable model content: {content[:500]}")
            raise ModelCallError("Model reply is not a JSON object", content=content)

        try:
            payload = ReplyPayload.model_validate(parsed)
        except ValidationError as e:
            logger.debug(f"Invalid model payload: {parsed}")
            raise ModelCallError(f"Model reply has the wrong shape: {e.error_count()} error(s)", content=content) from e

        return ModelReply(reply_text=payload.reply, updated_context=payload.emotional_context)

    def _fix_json_string(self, json_str: str) -> str:
        """
        Clean up common syntax noise around LLM JSON output.

        Args:
            json_str: Raw JSON string that may have issues.

        Returns:
            Cleaned JSON string.
        """
        if not json_str:
            return ""

        result = json_str.strip()

        # Strip fenced blocks.
        result = re.sub(r"^```(?:json)?\s*", "", result, flags=re.IGNORECASE)
        result = re.sub(r"\s*```$", "", result)

        # Normalize curly quotes.
        result = result.replace("“", '"').replace("”", '"')

        # Remove trailing commas before closing braces/brackets.
        result = re.sub(r",(\s*[}\]])", r"\1", result)

        return result

    def _parse_json_loose(self, raw: str) -> Any:
        """Parse the first JSON object in `raw`, tolerating fences and surrounding prose.

        Well-formed content is decoded untouched; the cleanup pass only runs
        when that fails, so string values are never rewritten.

        Returns the decoded value, or None.
        """
        if not raw or not raw.strip():
            return None

        for candidate in (raw.strip(), self._fix_json_string(raw)):
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                pass

            start_idx = candidate.find("{")
            if start_idx == -1:
                continue
            try:
                obj, _ = json.JSONDecoder().raw_decode(candidate, start_idx)
            except json.JSONDecodeError:
                continue
            return obj

        return None

    async def ping(self) -> bool:
        """Check that the endpoint answers. Never raises for HTTP errors."""
        client = await self._get_client()
        try:
            response = await client.get("/api/tags")
        except httpx.HTTPError as e:
            logger.info(f"Model endpoint unreachable: {e!r}")
            return False
        return response.is_success
