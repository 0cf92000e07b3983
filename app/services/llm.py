"""Chat model registry for the advisor agents.

Two tiers are configured:
    - smart: routing decisions and the final synthesized answer
    - fast: specialist workers that mostly pick and call tools

Both tiers talk to any OpenAI-compatible endpoint (OpenAI, Groq, vLLM, ...)
through ``langchain-openai``.
"""

from enum import Enum
from typing import (
    Dict,
    Optional,
)

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import ChatOpenAI

from app.core.config import settings
from app.core.logging import logger


class ModelTier(str, Enum):
    """Model tiers used by the advisor graph."""

    SMART = "smart"
    FAST = "fast"


class LLMRegistry:
    """Lazily built, process-wide chat model instances keyed by tier."""

    _models: Dict[ModelTier, BaseChatModel] = {}

    @classmethod
    def _build(cls, tier: ModelTier) -> BaseChatModel:
        if tier == ModelTier.SMART:
            model_name = settings.SMART_LLM_MODEL
            temperature = settings.SMART_LLM_TEMPERATURE
            max_tokens = settings.SMART_LLM_MAX_TOKENS
        else:
            model_name = settings.FAST_LLM_MODEL
            temperature = settings.FAST_LLM_TEMPERATURE
            max_tokens = settings.FAST_LLM_MAX_TOKENS

        model = ChatOpenAI(
            model=model_name,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=settings.OPENAI_API_KEY or None,
            base_url=settings.OPENAI_API_BASE or None,
            max_retries=settings.LLM_MAX_RETRIES,
        )
        logger.info("llm_model_created", tier=tier.value, model=model_name, temperature=temperature)
        return model

    @classmethod
    def get(cls, tier: ModelTier | str) -> BaseChatModel:
        """Get (or create) the chat model for a tier.

        Args:
            tier: The model tier, as enum or its string value.

        Returns:
            BaseChatModel: The configured chat model.

        Raises:
            ValueError: If the tier is unknown.
        """
        tier = ModelTier(tier)
        if tier not in cls._models:
            cls._models[tier] = cls._build(tier)
        return cls._models[tier]

    @classmethod
    def register(cls, tier: ModelTier | str, model: Optional[BaseChatModel]) -> None:
        """Replace (or, with ``None``, forget) the model used for a tier."""
        tier = ModelTier(tier)
        if model is None:
            cls._models.pop(tier, None)
        else:
            cls._models[tier] = model
