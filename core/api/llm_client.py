"""
core.api.llm_client

Thin wrapper around the OpenAI Chat Completions API.

The relay talks to whichever chat-completions compatible endpoint is
configured (``LLM_BASE_URL``), authenticated with a Bearer key.

Used by:
  - runtime/agents/conversation_agent.py
  - runtime/api/chat_routes.py
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from configs.settings import Settings


logger = logging.getLogger(__name__)

# Only the most recent turns are replayed to the model.
HISTORY_LIMIT = 10

FALLBACK_TEXT = "I'm sorry, I couldn't process your request right now."


class LLMResponse(BaseModel):
    text: str = ""
    emotion: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


# -------------------------------------------------------------------
# Internal helpers
# -------------------------------------------------------------------


def _split_emotion(text: str) -> tuple[str, Optional[str]]:
    """
    Pull an optional emotion out of a model reply.

    Models prompted for avatar use sometimes answer with a small JSON object
    like ``{"text": "...", "emotion": "happy"}``; plain text is returned
    unchanged with no emotion.
    """
    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return text, None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return text, None
    if not isinstance(data, dict) or "text" not in data:
        return text, None
    emotion = data.get("emotion")
    return str(data["text"]), str(emotion) if emotion else None


def build_message_history(
    user_message: str,
    history: Optional[Sequence[Any]] = None,
    system_prompt: str = "You are a helpful AI assistant with a friendly personality.",
) -> List[Dict[str, str]]:
    """
    Build the ``messages`` array: system prompt, the last ``HISTORY_LIMIT``
    user/assistant turns, then the new user message.

    ``history`` items are ``ChatMessage``-like objects with ``type`` and
    ``content``; system messages are skipped.
    """
    messages = [{"role": "system", "content": system_prompt}]

    for message in list(history or [])[-HISTORY_LIMIT:]:
        kind = getattr(message.type, "value", message.type)
        if kind in ("UserText", "UserAudio"):
            messages.append({"role": "user", "content": message.content})
        elif kind in ("AssistantText", "AssistantAvatar"):
            messages.append({"role": "assistant", "content": message.content})

    messages.append({"role": "user", "content": user_message})
    return messages


# -------------------------------------------------------------------
# Public client
# -------------------------------------------------------------------


class LLMService:
    """Chat-completions client.

    Parameters
    ----------
    settings:
        Source of the model name, base URL, key, timeout and system prompt.
    client:
        Optional pre-built ``OpenAI`` client (tests pass a mock). When
        omitted, one is created on first use.
    """

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.settings.llm_api_key:
                raise RuntimeError(
                    "LLM_API_KEY is not set. Please export it in your environment "
                    "or define it in a .env file."
                )
            self._client = OpenAI(
                api_key=self.settings.llm_api_key,
                base_url=self.settings.llm_base_url,
                timeout=self.settings.llm_timeout,
                max_retries=2,
            )
        return self._client

    def get_response(
        self,
        user_message: str,
        history: Optional[Sequence[Any]] = None,
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send the conversation to the model and return its reply.

        Raises
        ------
        OpenAIError
            If the API call fails.
        """
        logger.info("[LLM] Requesting response for message of length %d", len(user_message))
        messages = build_message_history(
            user_message, history, system_prompt=self.settings.llm_system_prompt
        )

        try:
            completion = self.client.chat.completions.create(
                model=self.settings.llm_model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError:
            logger.exception("[LLM] Chat completion failed")
            raise

        if not completion.choices:
            logger.warning("[LLM] Empty response from model %s", self.settings.llm_model)
            return LLMResponse(text=FALLBACK_TEXT)

        choice = completion.choices[0]
        raw_text = choice.message.content or ""
        if not raw_text.strip():
            return LLMResponse(text=FALLBACK_TEXT)

        text, emotion = _split_emotion(raw_text)
        metadata: Dict[str, Any] = {
            "model": getattr(completion, "model", self.settings.llm_model),
            "finish_reason": getattr(choice, "finish_reason", None),
        }
        usage = getattr(completion, "usage", None)
        if usage is not None and hasattr(usage, "total_tokens"):
            metadata["total_tokens"] = usage.total_tokens

        logger.info("[LLM] Response received (%d chars)", len(text))
        return LLMResponse(text=text, emotion=emotion, metadata=metadata)
