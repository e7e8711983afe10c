"""LLM boundary: gateway protocol, Gemini client, scenario fake, prompts."""

from app.llm.gateway import NO_RESPONSE_SENTINEL, LLMGateway, get_gateway

__all__ = ["LLMGateway", "NO_RESPONSE_SENTINEL", "get_gateway"]
