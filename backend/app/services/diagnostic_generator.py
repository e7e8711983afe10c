"""DiagnosticGenerator: questionnaire answers -> LLM -> validated diagnostic.

Parsing never raises. A usable JSON object becomes a ``ParsedDiagnostic``
(each field coerced on its own); anything else becomes a
``FallbackDiagnostic`` carrying the raw answer as its summary. Gateway
errors are not caught here: the submission pipeline owns that fallback.
"""

from typing import Any

import structlog

from app.llm.gateway import LLMGateway
from app.llm.helpers import extract_json_object
from app.llm.prompts import build_diagnostic_prompt
from app.schemas.diagnostics import (
    DEFAULT_AI_SCORE,
    DiagnosticPayload,
    FallbackDiagnostic,
    ParsedDiagnostic,
)

logger = structlog.get_logger(__name__)

FALLBACK_INSIGHTS = ["Análise gerada pela IA"]
FALLBACK_RECOMMENDATIONS = ["Consulte um especialista para recomendações específicas"]
FALLBACK_AREAS = ["Áreas identificadas na análise"]


def parse_diagnostic(text: str) -> ParsedDiagnostic | FallbackDiagnostic:
    """Turn a raw model answer into a diagnostic result."""
    data = extract_json_object(text)
    if data is None:
        logger.warning("diagnostic_parse_fallback", response_length=len(text or ""))
        return FallbackDiagnostic(
            insights=list(FALLBACK_INSIGHTS),
            recommendations=list(FALLBACK_RECOMMENDATIONS),
            areas_focus=list(FALLBACK_AREAS),
            score_intelligent=DEFAULT_AI_SCORE,
            analysis_summary=text or "",
        )

    payload = DiagnosticPayload.model_validate(data)
    return ParsedDiagnostic(
        insights=payload.insights,
        recommendations=payload.recommendations,
        areas_focus=payload.areas_focus,
        score_intelligent=payload.score_intelligent,
        analysis_summary=payload.analysis_summary if payload.analysis_summary is not None else text,
    )


class DiagnosticGenerator:
    """Builds the diagnostic prompt, calls the gateway and parses the answer."""

    def __init__(self, gateway: LLMGateway):
        self.gateway = gateway

    async def generate(self, questionnaire: Any, responses: list[Any]) -> ParsedDiagnostic | FallbackDiagnostic:
        """Generate a diagnostic for ``responses`` to ``questionnaire``.

        Raises:
            LLMGatewayError: when no model answered
        """
        prompt = build_diagnostic_prompt(questionnaire, responses)
        text = await self.gateway.analyze(prompt)
        result = parse_diagnostic(text)

        logger.info(
            "diagnostic_generated",
            questionnaire_id=str(questionnaire.id),
            source=result.source,
            score=result.score_intelligent,
        )
        return result
