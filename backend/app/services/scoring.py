"""Deterministic scoring: basic score, category, rule-based insights, public score.

Two formulas live here on purpose. ``basic_score`` is what the submission
pipeline stores (answers assumed on a 0-5 scale, unclamped), while
``public_score`` is the pre-signup estimate (answers out of 10, option
scores out of the best option). They are not interchangeable.
"""

import math
from decimal import ROUND_FLOOR, Decimal
from typing import Any

from app.core.exceptions import ValidationError
from app.schemas.diagnostics import RuleBasedInsights

BASIC_SCALE_MAX = 5
PUBLIC_SCALE_MAX = 10
PUBLIC_DEFAULT_ANSWER = 3

_BASIC_INSIGHTS: dict[str, RuleBasedInsights] = {
    "Excelente": RuleBasedInsights(
        recommendations=[
            "Continue mantendo os padrões atuais",
            "Compartilhe as melhores práticas com outras equipes",
            "Monitore regularmente para manter a excelência",
        ],
        areas_for_improvement=[],
    ),
    "Bom": RuleBasedInsights(
        recommendations=[
            "Identifique áreas específicas para melhorar",
            "Implemente feedback regular da equipe",
            "Foque em comunicação e reconhecimento",
        ],
        areas_for_improvement=["Comunicação", "Reconhecimento"],
    ),
    "Regular": RuleBasedInsights(
        recommendations=[
            "Priorize melhorias na comunicação",
            "Implemente programa de reconhecimento",
            "Avalie políticas de trabalho",
        ],
        areas_for_improvement=["Comunicação", "Reconhecimento", "Ambiente de trabalho"],
    ),
    "Crítico": RuleBasedInsights(
        recommendations=[
            "Ação imediata necessária",
            "Revisão completa das políticas",
            "Suporte profissional recomendado",
        ],
        areas_for_improvement=["Todas as áreas avaliadas"],
    ),
}


def round_half_up(value: float) -> int:
    """Round halves toward +infinity: 72.5 -> 73, -2.5 -> -2.

    ``round()`` would give 72 (banker's rounding).
    """
    return int((Decimal(str(value)) + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def parse_numeric(answer: Any) -> float | None:
    """Finite number parsed from an answer, or None. Blank strings are not numbers."""
    if isinstance(answer, bool):
        return None
    if isinstance(answer, (int, float)):
        value = float(answer)
    elif isinstance(answer, str) and answer.strip():
        try:
            value = float(answer.strip())
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


def basic_score(total: float, answered: int) -> int:
    """``round(100 * total / (5 * answered))``.

    Raises:
        ValidationError: when nothing was answered
    """
    if answered <= 0:
        raise ValidationError("Nenhuma resposta enviada")
    return round_half_up(100 * total / (BASIC_SCALE_MAX * answered))


def score_category(score: float) -> str:
    if score >= 80:
        return "Excelente"
    if score >= 60:
        return "Bom"
    if score >= 40:
        return "Regular"
    return "Crítico"


def basic_insights(category: str) -> RuleBasedInsights:
    """Canned recommendations for a score category (unknown categories get none)."""
    insights = _BASIC_INSIGHTS.get(category)
    if insights is None:
        return RuleBasedInsights(recommendations=[], areas_for_improvement=[])
    return insights.model_copy(deep=True)


def public_score(answers: dict[str, str], questions: list[Any]) -> int:
    """Pre-signup score over the questions that were answered, 0 when none were.

    - scale: numeric value out of 10 (non-numeric counts as 0)
    - multiple_choice with options: chosen option's score out of the best option's
    - anything else: numeric value, or 3 when not a non-zero number, out of 10
    """
    total = 0.0
    max_possible = 0.0

    for question in questions:
        answer = answers.get(str(question.id))
        if answer is None:
            continue

        options = list(question.options or [])
        if question.type == "scale":
            total += parse_numeric(answer) or 0.0
            max_possible += PUBLIC_SCALE_MAX
        elif question.type == "multiple_choice" and options:
            chosen = next((opt for opt in options if opt.value == answer), None)
            total += chosen.score if chosen is not None else 0
            max_possible += max(opt.score for opt in options)
        else:
            total += parse_numeric(answer) or PUBLIC_DEFAULT_ANSWER
            max_possible += PUBLIC_SCALE_MAX

    if max_possible <= 0:
        return 0
    return round_half_up(100 * total / max_possible)
