"""Prompt builders for diagnostic and action-plan generation.

Prompts are in Portuguese because every questionnaire, answer and generated
text in the product is. Both builders are pure and deterministic for a given
input so the exact text can be asserted in tests.
"""

import json
from typing import Any

BUSINESS_AREAS_RUBRIC = """

ANALISE O IMPACTO DAS RESPOSTAS NAS 8 ÁREAS ESSENCIAIS EMPRESARIAIS:

1. FINANCEIRO & CONTÁBIL
   - Gestão de caixa, contas a pagar/receber, orçamento, custos, impostos
   - Saúde financeira é o pilar da sustentabilidade da empresa

2. RECURSOS HUMANOS (RH) & PESSOAS
   - Recrutamento, retenção, clima organizacional, treinamento, cultura
   - Impacta diretamente na motivação e produtividade da equipe

3. MARKETING & COMUNICAÇÃO
   - Posicionamento de marca, publicidade, redes sociais, relacionamento com clientes
   - Essencial para gerar demanda e fortalecer a imagem da empresa

4. COMERCIAL & VENDAS
   - Estratégias de prospecção, funil de vendas, CRM, atendimento ao cliente
   - É onde o marketing se converte em receita efetiva

5. OPERAÇÕES & PRODUÇÃO
   - Processos internos, logística, estoque, qualidade
   - Garante que a entrega de produtos/serviços seja eficiente

6. TECNOLOGIA DA INFORMAÇÃO (TI) & INOVAÇÃO
   - Infraestrutura digital, sistemas de gestão, segurança da informação
   - Base tecnológica sólida para qualquer tipo de empresa

7. JURÍDICO & COMPLIANCE
   - Contratos, legislação trabalhista, LGPD, ética nos negócios
   - Evita riscos legais e garante credibilidade

8. ESTRATÉGIA & GESTÃO
   - Planejamento estratégico, governança, métricas (KPIs), tomada de decisão
   - Dá direção para todas as outras áreas

INSTRUÇÕES ESPECÍFICAS:
- Identifique quais dessas 8 áreas são mais impactadas pelas respostas
- Selecione os 3 insights, as 3 recomendações e as 3 áreas de foco mais relevantes
- Sugira ações concretas que a empresa pode tomar
- Priorize as áreas que precisam de atenção imediata"""

DIAGNOSTIC_RESPONSE_FORMAT = """

FORMATO DE RESPOSTA OBRIGATÓRIO:
Responda EXATAMENTE no seguinte formato JSON:
{
  "insights": ["insight 1", "insight 2", "insight 3"],
  "recommendations": ["recomendação 1", "recomendação 2", "recomendação 3"],
  "areas_focus": ["área 1", "área 2", "área 3"],
  "score_intelligent": 75,
  "analysis_summary": "Resumo detalhado da análise em 2-3 parágrafos"
}

IMPORTANTE:
- O score_intelligent deve ser um número de 0 a 100 baseado no impacto empresarial geral
- Forneça insights específicos para as áreas empresariais identificadas
- As recomendações devem ser ações concretas que a empresa pode implementar
- As áreas de foco devem ser das 8 áreas essenciais empresariais (ex: "RH & Pessoas", "Financeiro & Contábil")
- Priorize insights que impactem diretamente nos resultados do negócio"""


def _format_score(score: float | None) -> str:
    if score is None:
        return "N/A"
    value = float(score)
    return str(int(value)) if value.is_integer() else str(value)


def build_diagnostic_prompt(questionnaire: Any, responses: list[Any]) -> str:
    """Prompt asking for a JSON diagnostic of ``responses`` to ``questionnaire``.

    ``questionnaire`` needs ``title``, ``type``, ``description`` and
    ``questions`` (each with ``id``, ``question``, ``type``); every response
    needs ``question_id``, ``response`` and ``score``.
    """
    questionnaire_type = (questionnaire.type or "").lower() or "geral"
    questions = {str(q.id): q for q in (questionnaire.questions or [])}

    prompt = f"""Você é um consultor empresarial especializado em diagnóstico organizacional.
Analise as respostas do questionário "{questionnaire.title}" e forneça um diagnóstico empresarial focado nas 8 áreas essenciais de negócio.

QUESTIONÁRIO:
Título: {questionnaire.title}
Tipo: {questionnaire_type}
Descrição: {questionnaire.description or 'Não informada'}

RESPOSTAS DO USUÁRIO:
"""

    for index, response in enumerate(responses, start=1):
        question = questions.get(str(response.question_id))
        prompt += f"""
{index}. Pergunta: {question.question if question else 'Pergunta não encontrada'}
   Resposta: {response.response}
   Tipo: {question.type if question else 'unknown'}
   Score: {_format_score(response.score)}"""

    return prompt + BUSINESS_AREAS_RUBRIC + DIAGNOSTIC_RESPONSE_FORMAT


def build_action_plan_context(diagnostic: Any) -> dict:
    """Summarize a loaded diagnostic (with questionnaire and user) for the plan prompt."""
    questionnaire = diagnostic.questionnaire
    user = diagnostic.user
    score = diagnostic.score_intelligent

    return {
        "id": str(diagnostic.id),
        "titulo": (questionnaire.title if questionnaire else None) or "Diagnóstico",
        "descricao": (questionnaire.description if questionnaire else None) or "",
        "diagnostico": {
            "insights": "\n".join(_as_text_list(diagnostic.insights)),
            "recomendacoes": "\n".join(_as_text_list(diagnostic.recommendations)),
            "areasFoco": ", ".join(_as_text_list(diagnostic.areas_focus)),
            "pontuacao": score if isinstance(score, (int, float)) else 0,
            "dataGeracao": diagnostic.generated_at.isoformat() if diagnostic.generated_at else None,
            "dataConclusao": diagnostic.completed_at.isoformat() if diagnostic.completed_at else None,
            "status": diagnostic.status or "completed",
        },
        "usuario": {
            "id": str(diagnostic.user_id),
            "nome": (user.name if user else None) or "Usuário",
            "email": (user.email if user else None) or "",
        },
    }


def _as_text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def build_action_plan_prompt(context: dict) -> str:
    """Prompt asking for a JSON action plan built from a diagnostic summary."""
    return f"""Você é um consultor empresarial especializado em desenvolvimento organizacional.
Com base no diagnóstico abaixo, crie um Plano de Ação detalhado com tarefas específicas, prazos e prioridades.

DIAGNÓSTICO:
{json.dumps(context, ensure_ascii=False, indent=2)}

INSTRUÇÕES:
1. Analise as áreas de melhoria identificadas no diagnóstico
2. Crie um plano de ação prático e realista
3. Inclua prazos realistas (em dias a partir de hoje)
4. Defina prioridades claras (alta, media, baixa)
5. Agrupe as tarefas por área de negócio
6. Inclua métricas de sucesso para cada tarefa

FORMATO DA RESPOSTA (em JSON):
{{
  "titulo": "Título do Plano de Ação",
  "descricao": "Descrição geral do plano com objetivos claros",
  "dataInicio": "AAAA-MM-DD (hoje)",
  "dataFim": "AAAA-MM-DD (até 1 ano)",
  "status": "pendente",
  "progresso": 0,
  "tarefas": [
    {{
      "descricao": "Descrição detalhada da tarefa",
      "prioridade": "alta|media|baixa",
      "area": "Comunicação|Liderança|Recursos Humanos|etc",
      "prazoDias": 30
    }}
  ]
}}

O campo prazoDias é o número de dias até o vencimento da tarefa, contado a partir de hoje."""
