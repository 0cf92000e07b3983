"""Unit tests for the chat model registry and the graph run config."""

from unittest.mock import (
    MagicMock,
    patch,
)

import pytest

from app.core.config import settings
from app.core.langgraph.base import (
    BaseAgentMixin,
    get_langfuse_client,
)
from app.schemas import Message
from app.services.llm import (
    LLMRegistry,
    ModelTier,
)


@pytest.fixture(autouse=True)
def reset_registry():
    """Forget cached models between tests."""
    for tier in ModelTier:
        LLMRegistry.register(tier, None)
    yield
    for tier in ModelTier:
        LLMRegistry.register(tier, None)


class TestLLMRegistry:
    """Tests for tiered model construction."""

    def test_smart_tier_settings(self):
        """Test that the smart tier uses the smart model settings."""
        with patch("app.services.llm.ChatOpenAI") as chat_openai:
            LLMRegistry.get(ModelTier.SMART)

        kwargs = chat_openai.call_args.kwargs
        assert kwargs["model"] == settings.SMART_LLM_MODEL
        assert kwargs["temperature"] == settings.SMART_LLM_TEMPERATURE
        assert kwargs["max_tokens"] == settings.SMART_LLM_MAX_TOKENS

    def test_models_are_reused(self):
        """Test that a tier is built once."""
        with patch("app.services.llm.ChatOpenAI") as chat_openai:
            first = LLMRegistry.get("fast")
            second = LLMRegistry.get(ModelTier.FAST)

        assert first is second
        assert chat_openai.call_count == 1

    def test_register_override(self):
        """Test that a registered model replaces the configured one."""
        fake = MagicMock()
        LLMRegistry.register(ModelTier.SMART, fake)
        assert LLMRegistry.get(ModelTier.SMART) is fake

    def test_unknown_tier(self):
        """Test that unknown tiers raise ValueError."""
        with pytest.raises(ValueError):
            LLMRegistry.get("huge")


class TestBaseAgentMixin:
    """Tests for message conversion and run config."""

    def test_message_conversion(self):
        """Test that API roles map to LangChain message types."""
        converted = BaseAgentMixin()._to_langchain_messages(
            [
                Message(role="system", content="Be brief."),
                Message(role="user", content="BTC price?"),
                Message(role="assistant", content="64k."),
            ]
        )
        assert [m.type for m in converted] == ["system", "human", "ai"]

    def test_run_config_without_tracing(self):
        """Test the recursion limit and that no callbacks are added when tracing is off."""
        with patch.object(settings, "LANGFUSE_TRACING_ENABLED", False):
            config = BaseAgentMixin()._build_run_config("s1", market="crypto")

        assert config["recursion_limit"] == settings.ADVISOR_RECURSION_LIMIT
        assert config["callbacks"] == []
        assert config["metadata"]["langfuse_session_id"] == "s1"
        assert config["metadata"]["market"] == "crypto"

    def test_run_config_with_tracing(self):
        """Test that the Langfuse client is built from settings and its handler attached."""
        handler = MagicMock()
        get_langfuse_client.cache_clear()
        with (
            patch.object(settings, "LANGFUSE_TRACING_ENABLED", True),
            patch.object(settings, "LANGFUSE_PUBLIC_KEY", "pk-test"),
            patch.object(settings, "LANGFUSE_SECRET_KEY", "sk-test"),
            patch("app.core.langgraph.base.Langfuse") as langfuse_cls,
            patch("app.core.langgraph.base.CallbackHandler", return_value=handler) as handler_cls,
        ):
            config = BaseAgentMixin()._build_run_config("s1")
            BaseAgentMixin()._build_run_config("s2")
        get_langfuse_client.cache_clear()

        assert config["callbacks"] == [handler]
        langfuse_cls.assert_called_once_with(public_key="pk-test", secret_key="sk-test", host=settings.LANGFUSE_HOST)
        handler_cls.assert_called_with(public_key="pk-test")
