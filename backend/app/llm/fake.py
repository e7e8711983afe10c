"""GatewayFake: scenario-based test double for the LLMGateway protocol.

Scenarios:
- happy_path: valid diagnostic JSON and a three-task action plan
- llm_failure: every call raises LLMGatewayError
- malformed: prose with no JSON in it
- empty_tasks: valid diagnostic, action plan with an empty task list
- plan_failure: valid diagnostic, action-plan call raises LLMGatewayError

Every prompt is recorded in ``prompts`` for assertions. Responses are
instant and deterministic.
"""

import json

from app.core.exceptions import LLMGatewayError

HAPPY_DIAGNOSTIC = {
    "insights": [
        "Comunicação entre liderança e equipes é irregular",
        "Sobrecarga recorrente no time de operações",
        "Reconhecimento informal é valorizado pelos colaboradores",
    ],
    "recommendations": [
        "Instituir reuniões quinzenais de alinhamento",
        "Redistribuir demandas críticas de operações",
        "Formalizar um programa de reconhecimento",
    ],
    "areas_focus": ["RH & Pessoas", "Operações & Produção", "Estratégia & Gestão"],
    "score_intelligent": 72,
    "analysis_summary": "A organização apresenta clima positivo, com gargalos de comunicação e carga de trabalho.",
}

HAPPY_PLAN = {
    "titulo": "Plano de Fortalecimento do Clima Organizacional",
    "descricao": "Ações para melhorar comunicação, carga de trabalho e reconhecimento.",
    "dataInicio": "2024-01-01",
    "dataFim": "2024-06-30",
    "status": "pendente",
    "progresso": 40,
    "tarefas": [
        {
            "descricao": "Implantar reuniões quinzenais de alinhamento entre liderança e equipes de todas as áreas",
            "prioridade": "alta",
            "area": "Leadership",
            "prazoDias": 14,
        },
        {
            "descricao": "Mapear e redistribuir demandas críticas de operações",
            "prioridade": "media",
            "area": "Operações",
            "prazoDias": 45,
        },
        {
            "descricao": "Lançar programa de reconhecimento mensal",
            "prioridade": "baixa",
            "area": "Recursos Humanos",
            "prazoDias": 60,
        },
    ],
}

MALFORMED_TEXT = "Desculpe, não consegui estruturar a análise desta vez."


class GatewayFake:
    """Deterministic stand-in for GeminiGateway."""

    VALID_SCENARIOS = {"happy_path", "llm_failure", "malformed", "empty_tasks", "plan_failure"}

    def __init__(self, scenario: str = "happy_path"):
        """
        Raises:
            ValueError: if scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}")
        self.scenario = scenario
        self.prompts: list[str] = []

    @staticmethod
    def is_action_plan_prompt(prompt: str) -> bool:
        return '"tarefas"' in prompt

    async def analyze(self, prompt: str) -> str:
        self.prompts.append(prompt)

        if self.scenario == "llm_failure":
            raise LLMGatewayError("Erro ao consultar Gemini: Service Unavailable")

        if self.scenario == "malformed":
            return MALFORMED_TEXT

        if not self.is_action_plan_prompt(prompt):
            return "```json\n" + json.dumps(HAPPY_DIAGNOSTIC, ensure_ascii=False) + "\n```"

        if self.scenario == "plan_failure":
            raise LLMGatewayError("Erro ao consultar Gemini: Deadline exceeded")

        if self.scenario == "empty_tasks":
            return json.dumps({**HAPPY_PLAN, "tarefas": []}, ensure_ascii=False)

        return "Segue o plano:\n" + json.dumps(HAPPY_PLAN, ensure_ascii=False)
