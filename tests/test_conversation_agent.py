"""Tests for core.api.llm_client and runtime.agents.conversation_agent."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from core.api.llm_client import (
    FALLBACK_TEXT,
    HISTORY_LIMIT,
    LLMService,
    build_message_history,
)
from exceptions.exceptions import NotFoundError
from runtime.agents.conversation_agent import ConversationAgent
from runtime.agents.stream_orchestrator import AvatarStreamOrchestrator
from runtime.models.session_models import (
    AvatarStreamInfo,
    ChatMessage,
    MessageStatus,
    MessageType,
    StreamStatus,
)
from runtime.store.session_store import ChatSessionStore
from runtime.store.stream_store import StreamRegistry

from conftest import make_completion


def _settings(**overrides):
    values = dict(
        llm_api_key="k",
        llm_base_url=None,
        llm_model="test-model",
        llm_timeout=5.0,
        llm_system_prompt="Be brief.",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestMessageHistory:
    def test_roles_and_order(self):
        history = [
            ChatMessage(type=MessageType.USER_TEXT, content="q1"),
            ChatMessage(type=MessageType.ASSISTANT_AVATAR, content="a1"),
            ChatMessage(type=MessageType.SYSTEM, content="ignored"),
            ChatMessage(type=MessageType.USER_AUDIO, content="q2"),
        ]
        messages = build_message_history("now", history, system_prompt="sys")
        assert messages == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
            {"role": "user", "content": "now"},
        ]

    def test_only_recent_turns_are_replayed(self):
        history = [ChatMessage(content=f"m{i}") for i in range(HISTORY_LIMIT + 5)]
        messages = build_message_history("now", history)
        assert len(messages) == HISTORY_LIMIT + 2
        assert messages[1]["content"] == "m5"


class TestLLMService:
    def test_plain_reply(self, llm_client):
        reply = LLMService(_settings(), client=llm_client).get_response("hi")
        assert reply.text == "Hello there!"
        assert reply.emotion is None
        assert reply.metadata["total_tokens"] == 42

        kwargs = llm_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief."}

    def test_json_reply_carries_emotion(self, llm_client):
        llm_client.chat.completions.create.return_value = make_completion(
            '{"text": "Great news!", "emotion": "happy"}'
        )
        reply = LLMService(_settings(), client=llm_client).get_response("hi")
        assert reply.text == "Great news!"
        assert reply.emotion == "happy"

    def test_empty_reply_falls_back(self, llm_client):
        llm_client.chat.completions.create.return_value = make_completion("   ")
        reply = LLMService(_settings(), client=llm_client).get_response("hi")
        assert reply.text == FALLBACK_TEXT

    def test_api_errors_propagate(self, llm_client):
        llm_client.chat.completions.create.side_effect = OpenAIError("quota")
        with pytest.raises(OpenAIError):
            LLMService(_settings(), client=llm_client).get_response("hi")

    def test_missing_key_is_reported(self):
        service = LLMService(_settings(llm_api_key=None))
        with pytest.raises(RuntimeError, match="LLM_API_KEY"):
            service.get_response("hi")


@pytest.fixture
def store():
    return ChatSessionStore()


@pytest.fixture
def orchestrator(did_client, clock):
    return AvatarStreamOrchestrator(did_client, StreamRegistry(clock=clock))


@pytest.fixture
def agent(store, llm_client, orchestrator):
    return ConversationAgent(store, LLMService(_settings(), client=llm_client), orchestrator)


class TestConversationAgent:
    def test_text_only_turn(self, agent, store):
        session = store.create_session("user_1")
        result = agent.handle_user_message(session.session_id, "hi")

        assert result.text == "Hello there!"
        assert result.spoken is False

        messages = store.get_session(session.session_id).messages
        assert [m.type for m in messages] == [MessageType.USER_TEXT, MessageType.ASSISTANT_TEXT]
        assert [m.status for m in messages] == [MessageStatus.COMPLETED, MessageStatus.COMPLETED]
        assert messages[0].id == result.user_message_id

    def test_history_is_replayed(self, agent, store, llm_client):
        session = store.create_session("user_1")
        agent.handle_user_message(session.session_id, "first")
        agent.handle_user_message(session.session_id, "second")

        sent = llm_client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["content"] for m in sent[1:]] == ["first", "Hello there!", "second"]

    def test_attached_stream_speaks_reply(self, agent, store, orchestrator, vendor):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")
        session = store.create_session("user_1")
        store.attach_stream(session.session_id, orchestrator.get_stream("strm_1"))

        result = agent.handle_user_message(session.session_id, "hi")

        assert result.spoken is True
        script = vendor.calls("POST", "/clips/streams/strm_1")[0].json
        assert script["script"]["input"] == "Hello there!"
        assert store.get_session(session.session_id).messages[-1].type == MessageType.ASSISTANT_AVATAR

    def test_stream_not_connected_replies_with_text(self, agent, store, orchestrator, vendor):
        orchestrator.create_stream()
        session = store.create_session("user_1")
        store.attach_stream(session.session_id, orchestrator.get_stream("strm_1"))

        result = agent.handle_user_message(session.session_id, "hi")

        assert result.spoken is False
        assert vendor.calls("POST", "/clips/streams/strm_1") == []

    def test_rejected_speech_marks_reply_failed(self, agent, store, orchestrator, vendor):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")
        vendor.on("POST", "/clips/streams/strm_1", status=400)
        session = store.create_session("user_1")
        store.attach_stream(session.session_id, orchestrator.get_stream("strm_1"))

        result = agent.handle_user_message(session.session_id, "hi")

        reply = store.get_session(session.session_id).messages[-1]
        assert result.spoken is False
        assert reply.type == MessageType.ASSISTANT_TEXT
        assert reply.status == MessageStatus.FAILED
        assert reply.error_message

    def test_reaped_stream_is_not_spoken_to(self, agent, store, orchestrator, vendor, clock):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")
        session = store.create_session("user_1")
        store.attach_stream(session.session_id, orchestrator.get_stream("strm_1"))

        clock.advance(4000)
        assert orchestrator.close_idle_streams(60) == 1

        result = agent.handle_user_message(session.session_id, "hi")

        assert result.spoken is False
        assert vendor.calls("POST", "/clips/streams/strm_1") == []
        stored = store.get_session(session.session_id)
        assert stored.active_stream is None
        assert stored.messages[-1].status == MessageStatus.COMPLETED

    def test_untracked_stream_is_not_spoken_to(self, agent, store, vendor):
        session = store.create_session("user_1")
        store.attach_stream(
            session.session_id,
            AvatarStreamInfo(stream_id="ext", session_id="abc", status=StreamStatus.CONNECTED),
        )

        result = agent.handle_user_message(session.session_id, "hi")

        assert result.spoken is False
        assert vendor.calls("POST", "/clips/streams/ext") == []
        assert store.get_session(session.session_id).messages[-1].type == MessageType.ASSISTANT_TEXT

    def test_llm_failure_marks_user_message_failed(self, agent, store, llm_client):
        llm_client.chat.completions.create.side_effect = OpenAIError("down")
        session = store.create_session("user_1")

        with pytest.raises(OpenAIError):
            agent.handle_user_message(session.session_id, "hi")

        messages = store.get_session(session.session_id).messages
        assert len(messages) == 1
        assert messages[0].status == MessageStatus.FAILED
        assert "down" in messages[0].error_message

    def test_unknown_session(self, agent):
        with pytest.raises(NotFoundError):
            agent.handle_user_message("missing", "hi")

    def test_speak_disabled(self, store, llm_client):
        orchestrator = MagicMock()
        agent = ConversationAgent(store, LLMService(_settings(), client=llm_client), orchestrator)
        session = store.create_session("user_1")
        store.attach_stream(
            session.session_id,
            AvatarStreamInfo(stream_id="s", session_id="x", status=StreamStatus.CONNECTED),
        )
        agent.handle_user_message(session.session_id, "hi", speak=False)
        orchestrator.send_text.assert_not_called()
