"""LLMGateway protocol: the single seam between business logic and the model API.

Services only ever call ``analyze(prompt) -> str``. Production uses
``GeminiGateway``; tests and keyless local runs use ``GatewayFake``.
"""

from typing import Protocol, runtime_checkable

import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

# Returned when the model answers 2xx but the text path is missing
NO_RESPONSE_SENTINEL = "Sem resposta da IA."


@runtime_checkable
class LLMGateway(Protocol):
    async def analyze(self, prompt: str) -> str:
        """Send ``prompt`` to the model and return its raw text answer.

        Raises:
            LLMGatewayError: when no configured model produced an answer
        """
        ...


def get_gateway() -> LLMGateway:
    """Dependency that provides the LLM gateway.

    Returns GeminiGateway when an API key or service account is configured,
    GatewayFake otherwise. Override in tests via app.dependency_overrides.
    """
    settings = get_settings()

    if settings.llm_configured:
        from app.llm.gemini import GeminiGateway

        return GeminiGateway(settings)

    from app.llm.fake import GatewayFake

    logger.warning("llm_gateway_fake_in_use", reason="no_gemini_credentials")
    return GatewayFake()
