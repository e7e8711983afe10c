"""QuestionnaireService — questionnaire management and the submission pipeline.

Submission (``respond`` / ``transfer``) runs, per (user, questionnaire):

    validate answers -> persist responses -> basic score
      -> diagnostic(processing) -> LLM diagnostic | rule-based fallback
      -> diagnostic(completed) -> action plan (failures logged, not raised)

The basic score is always computed so the rule-based fallback never
depends on the model.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, distinct, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    DuplicateResponseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.db.models.action_plan import ActionPlan
from app.db.models.diagnostic import Diagnostic
from app.db.models.questionnaire import Questionnaire, QuestionnaireOption, QuestionnaireQuestion
from app.db.models.questionnaire_response import QuestionnaireResponse
from app.llm.gateway import LLMGateway
from app.schemas.diagnostics import DiagnosticSummary, SubmissionResult
from app.schemas.questionnaires import (
    PublicQuestionnaireRef,
    PublicScoreResult,
    PublicTempData,
    QuestionIn,
    QuestionnaireCreate,
    QuestionnaireOut,
    QuestionnaireStatistics,
    QuestionnaireUpdate,
    ResponseOut,
)
from app.services import scoring
from app.services.action_plan_service import ActionPlanService
from app.services.diagnostic_generator import DiagnosticGenerator

logger = structlog.get_logger(__name__)

DUPLICATE_RESPONSE_MESSAGE = "Você já respondeu este questionário. Cada usuário pode responder apenas uma vez."
AI_UNAVAILABLE_MESSAGE = "IA indisponível, usando análise básica"

PLACEHOLDER_INSIGHTS = ["Analisando respostas..."]
PLACEHOLDER_RECOMMENDATIONS = ["Gerando recomendações..."]
PLACEHOLDER_AREAS = ["Processando..."]


def _build_questions(items: list[QuestionIn]) -> list[QuestionnaireQuestion]:
    return [
        QuestionnaireQuestion(
            question=item.question,
            type=item.type,
            order=item.order,
            required=item.required,
            is_active=item.is_active,
            options=[
                QuestionnaireOption(value=opt.value, label=opt.label, score=opt.score, order=opt.order)
                for opt in item.options
            ],
        )
        for item in items
    ]


class QuestionnaireService:
    """Service layer for questionnaires, their responses and submissions.

    The gateway is only used by ``respond`` and ``transfer``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: LLMGateway | None = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.action_plans = ActionPlanService(session_factory, gateway)

    # ---------- management ----------

    async def create(self, payload: QuestionnaireCreate, user_id: uuid.UUID) -> QuestionnaireOut:
        async with self.session_factory() as session:
            questionnaire = Questionnaire(
                title=payload.title,
                description=payload.description,
                type=payload.type,
                is_active=payload.is_active,
                created_by=user_id,
                questions=_build_questions(payload.questions),
            )
            session.add(questionnaire)
            await session.commit()
            questionnaire_id = questionnaire.id

        logger.info("questionnaire_created", questionnaire_id=str(questionnaire_id), user_id=str(user_id))
        return await self.get(questionnaire_id)

    async def list_for_role(self, role: str, type: str | None = None) -> list[QuestionnaireOut]:
        """Masters see every questionnaire, everyone else only active ones. Newest first."""
        stmt = select(Questionnaire).order_by(Questionnaire.created_at.desc())
        if role != "master":
            stmt = stmt.where(Questionnaire.is_active.is_(True))
        if type:
            stmt = stmt.where(Questionnaire.type == type)

        async with self.session_factory() as session:
            questionnaires = list((await session.execute(stmt)).scalars().all())
            counts = await self._response_counts(session, [q.id for q in questionnaires])
        return [self._to_out(q, counts.get(q.id, 0)) for q in questionnaires]

    async def get(self, questionnaire_id: uuid.UUID) -> QuestionnaireOut:
        async with self.session_factory() as session:
            questionnaire = await self._fetch(session, questionnaire_id)
            counts = await self._response_counts(session, [questionnaire.id])
        return self._to_out(questionnaire, counts.get(questionnaire.id, 0))

    async def update(
        self, questionnaire_id: uuid.UUID, payload: QuestionnaireUpdate, user_id: uuid.UUID, role: str
    ) -> QuestionnaireOut:
        """Update fields; a ``questions`` list recreates every question.

        Raises:
            NotFoundError: no such questionnaire
            PermissionDeniedError: caller is neither master nor the creator
        """
        async with self.session_factory() as session:
            questionnaire = await self._fetch(session, questionnaire_id)
            self._check_author(questionnaire, user_id, role, "editar")

            fields = payload.model_dump(exclude_unset=True, exclude={"questions"})
            for name, value in fields.items():
                if value is None and name != "description":
                    continue
                setattr(questionnaire, name, value)
            if payload.questions is not None:
                questionnaire.questions = _build_questions(payload.questions)

            await session.commit()

        logger.info("questionnaire_updated", questionnaire_id=str(questionnaire_id), user_id=str(user_id))
        return await self.get(questionnaire_id)

    async def delete(self, questionnaire_id: uuid.UUID, role: str) -> None:
        """Delete a questionnaire that has never been answered. Masters only."""
        async with self.session_factory() as session:
            questionnaire = await self._fetch(session, questionnaire_id)
            if role != "master":
                raise PermissionDeniedError("Apenas usuários master podem deletar questionários")

            answered = await session.scalar(
                select(func.count(QuestionnaireResponse.id)).where(
                    QuestionnaireResponse.questionnaire_id == questionnaire_id
                )
            )
            if answered:
                raise PermissionDeniedError("Não é possível deletar questionário com respostas existentes")

            await session.delete(questionnaire)
            await session.commit()

        logger.info("questionnaire_deleted", questionnaire_id=str(questionnaire_id))

    async def toggle_active(self, questionnaire_id: uuid.UUID, user_id: uuid.UUID, role: str) -> QuestionnaireOut:
        """Flip ``is_active``. Activating one questionnaire deactivates all others."""
        async with self.session_factory() as session:
            questionnaire = await self._fetch(session, questionnaire_id)
            self._check_author(questionnaire, user_id, role, "ativar/desativar")
            if not questionnaire.questions:
                raise PermissionDeniedError("Questionário deve ter pelo menos uma pergunta para ser ativado")

            if questionnaire.is_active:
                questionnaire.is_active = False
            else:
                await session.execute(
                    update(Questionnaire)
                    .where(Questionnaire.is_active.is_(True), Questionnaire.id != questionnaire_id)
                    .values(is_active=False)
                    .execution_options(synchronize_session=False)
                )
                questionnaire.is_active = True
            await session.commit()
            is_active = questionnaire.is_active

        logger.info("questionnaire_toggled", questionnaire_id=str(questionnaire_id), is_active=is_active)
        return await self.get(questionnaire_id)

    async def get_active(self) -> QuestionnaireOut:
        """The currently active questionnaire.

        Raises:
            NotFoundError: when none is active
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(Questionnaire)
                .where(Questionnaire.is_active.is_(True))
                .order_by(Questionnaire.updated_at.desc())
                .limit(1)
            )
            questionnaire = result.scalar_one_or_none()
            if questionnaire is None:
                raise NotFoundError("Nenhum questionário ativo encontrado")
            counts = await self._response_counts(session, [questionnaire.id])
        return self._to_out(questionnaire, counts.get(questionnaire.id, 0))

    # ---------- responses & statistics ----------

    async def user_responses(self, user_id: uuid.UUID) -> list[ResponseOut]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(QuestionnaireResponse)
                .where(QuestionnaireResponse.user_id == user_id)
                .order_by(QuestionnaireResponse.completed_at.desc())
            )
            return [ResponseOut.model_validate(row) for row in result.scalars().all()]

    async def questionnaire_responses(self, questionnaire_id: uuid.UUID, role: str) -> list[ResponseOut]:
        if role == "user":
            raise PermissionDeniedError("Usuários não podem ver respostas de outros")
        async with self.session_factory() as session:
            result = await session.execute(
                select(QuestionnaireResponse)
                .where(QuestionnaireResponse.questionnaire_id == questionnaire_id)
                .order_by(QuestionnaireResponse.completed_at.desc())
            )
            return [ResponseOut.model_validate(row) for row in result.scalars().all()]

    async def statistics(self, questionnaire_id: uuid.UUID | None = None) -> QuestionnaireStatistics:
        conds = []
        if questionnaire_id is not None:
            conds.append(QuestionnaireResponse.questionnaire_id == questionnaire_id)

        async with self.session_factory() as session:
            total, respondents, answered = (
                await session.execute(
                    select(
                        func.count(QuestionnaireResponse.id),
                        func.count(distinct(QuestionnaireResponse.user_id)),
                        func.count(distinct(QuestionnaireResponse.questionnaire_id)),
                    ).where(*conds)
                )
            ).one()
            average = await session.scalar(
                select(func.avg(QuestionnaireResponse.score)).where(
                    *conds, QuestionnaireResponse.score.is_not(None)
                )
            )

        return QuestionnaireStatistics(
            total_responses=total or 0,
            average_score=float(average or 0),
            unique_respondents=respondents or 0,
            questionnaires_answered=answered or 0,
        )

    # ---------- public scoring ----------

    async def public_score(self, questionnaire_id: uuid.UUID, answers: dict[str, str]) -> PublicScoreResult:
        """Score pre-signup answers without persisting anything.

        Raises:
            NotFoundError: no such questionnaire
            ValidationError: the questionnaire is not active
        """
        async with self.session_factory() as session:
            questionnaire = await self._fetch(session, questionnaire_id)
        if not questionnaire.is_active:
            raise ValidationError("Questionário não está ativo")

        score = scoring.public_score(answers, questionnaire.questions)
        category = scoring.score_category(score)
        completed_at = datetime.now(timezone.utc)

        return PublicScoreResult(
            message="Diagnóstico calculado com sucesso",
            score=score,
            category=category,
            questionnaire=PublicQuestionnaireRef(
                id=questionnaire.id, title=questionnaire.title, type=questionnaire.type
            ),
            responses=len(answers),
            completed_at=completed_at,
            temp_data=PublicTempData(
                questionnaire_id=questionnaire.id,
                answers=answers,
                score=score,
                category=category,
                completed_at=completed_at,
            ),
        )

    # ---------- submission pipeline ----------

    async def respond(
        self, questionnaire_id: uuid.UUID, answers: dict[str, str], user_id: uuid.UUID
    ) -> SubmissionResult:
        """First submission for (user, questionnaire).

        Raises:
            NotFoundError: questionnaire missing or inactive, or an unknown question id
            DuplicateResponseError: the user already answered this questionnaire
            ValidationError: no answers
        """
        async with self.session_factory() as session:
            questionnaire = await self._fetch_active(session, questionnaire_id)
            already = await session.scalar(
                select(QuestionnaireResponse.id)
                .where(
                    QuestionnaireResponse.user_id == user_id,
                    QuestionnaireResponse.questionnaire_id == questionnaire_id,
                )
                .limit(1)
            )
        if already is not None:
            raise DuplicateResponseError(DUPLICATE_RESPONSE_MESSAGE)

        return await self._process(questionnaire, answers, user_id)

    async def transfer(
        self, questionnaire_id: uuid.UUID, answers: dict[str, str], user_id: uuid.UUID
    ) -> SubmissionResult:
        """Replace any prior submission with answers given before signup.

        Prior responses and diagnostics for the pair are purged; plans that
        pointed at a purged diagnostic are kept and detached.
        """
        async with self.session_factory() as session:
            questionnaire = await self._fetch_active(session, questionnaire_id)
            await session.execute(
                delete(QuestionnaireResponse)
                .where(
                    QuestionnaireResponse.user_id == user_id,
                    QuestionnaireResponse.questionnaire_id == questionnaire_id,
                )
                .execution_options(synchronize_session=False)
            )
            await self._purge_diagnostics(session, questionnaire_id, user_id)
            await session.commit()

        logger.info("submission_purged", questionnaire_id=str(questionnaire_id), user_id=str(user_id))
        return await self._process(questionnaire, answers, user_id)

    async def _process(
        self, questionnaire: Questionnaire, answers: dict[str, str], user_id: uuid.UUID
    ) -> SubmissionResult:
        questions = {question.id: question for question in questionnaire.questions}

        # Every id is checked before anything is written
        scored = []
        total = 0.0
        for key, answer in answers.items():
            try:
                question = questions.get(uuid.UUID(str(key)))
            except ValueError:
                question = None
            if question is None:
                raise NotFoundError(f"Pergunta {key} não encontrada")

            score = scoring.parse_numeric(answer) if question.type == "scale" else None
            if score is not None:
                total += score
            scored.append((question, answer, score))

        basic = scoring.basic_score(total, len(scored))
        category = scoring.score_category(basic)

        responses = await self._save_responses(questionnaire.id, user_id, scored)
        base_analysis = {
            "basic_score": basic,
            "category": category,
            "totalQuestions": len(responses),
            "answeredQuestions": len(responses),
        }

        # Recreating a questionnaire's questions cascades the answers away
        # but leaves the diagnostic; only one may exist per pair.
        await self._clear_stale_diagnostics(questionnaire.id, user_id)

        diagnostic_id = None
        try:
            processing = await self._save_diagnostic(
                questionnaire.id,
                user_id,
                {
                    "status": "processing",
                    "insights": list(PLACEHOLDER_INSIGHTS),
                    "recommendations": list(PLACEHOLDER_RECOMMENDATIONS),
                    "areas_focus": list(PLACEHOLDER_AREAS),
                    "score_intelligent": basic,
                    "analysis_data": base_analysis,
                },
            )
            diagnostic_id = processing.id

            if self.gateway is None:
                raise RuntimeError("No LLM gateway configured")
            result = await DiagnosticGenerator(self.gateway).generate(questionnaire, responses)

            diagnostic = await self._save_diagnostic(
                questionnaire.id,
                user_id,
                {
                    "status": "completed",
                    "insights": result.insights,
                    "recommendations": result.recommendations,
                    "areas_focus": result.areas_focus,
                    "score_intelligent": result.score_intelligent,
                    "analysis_data": {**base_analysis, "ai_analysis": result.analysis_summary},
                    "completed_at": datetime.now(timezone.utc),
                },
                diagnostic_id=diagnostic_id,
            )
            source = result.source
            score = result.score_intelligent
            message = "Questionário respondido e diagnóstico processado com sucesso"
        except Exception as exc:
            logger.warning(
                "diagnostic_fallback_used",
                questionnaire_id=str(questionnaire.id),
                user_id=str(user_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            diagnostic = await self._save_rule_based(questionnaire.id, user_id, basic, category, base_analysis, diagnostic_id)
            source = "rule_based"
            score = basic
            message = "Questionário respondido com análise básica"

        try:
            await self.action_plans.generate_from_diagnostic(diagnostic.id, user_id)
        except Exception as exc:
            logger.error(
                "action_plan_generation_failed",
                diagnostic_id=str(diagnostic.id),
                user_id=str(user_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )

        logger.info(
            "submission_processed",
            questionnaire_id=str(questionnaire.id),
            user_id=str(user_id),
            diagnostic_id=str(diagnostic.id),
            source=source,
            score=score,
        )
        return SubmissionResult(
            message=message,
            source=source,
            diagnostic=DiagnosticSummary(
                id=diagnostic.id,
                score=score,
                category=scoring.score_category(score),
                insights=list(diagnostic.insights or []),
                recommendations=list(diagnostic.recommendations or []),
                areas_focus=list(diagnostic.areas_focus or []),
            ),
            responses=len(responses),
            completed_at=datetime.now(timezone.utc),
        )

    async def _save_responses(
        self, questionnaire_id: uuid.UUID, user_id: uuid.UUID, scored: list[tuple]
    ) -> list[QuestionnaireResponse]:
        rows = [
            QuestionnaireResponse(
                user_id=user_id,
                questionnaire_id=questionnaire_id,
                question_id=question.id,
                response=answer,
                score=score,
            )
            for question, answer, score in scored
        ]
        async with self.session_factory() as session:
            session.add_all(rows)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                # A concurrent submission for the same pair got there first
                existing = await session.scalar(
                    select(QuestionnaireResponse.id)
                    .where(
                        QuestionnaireResponse.user_id == user_id,
                        QuestionnaireResponse.questionnaire_id == questionnaire_id,
                    )
                    .limit(1)
                )
                if existing is not None:
                    raise DuplicateResponseError(DUPLICATE_RESPONSE_MESSAGE)
                raise
        return rows

    async def _save_diagnostic(
        self,
        questionnaire_id: uuid.UUID,
        user_id: uuid.UUID,
        values: dict,
        diagnostic_id: uuid.UUID | None = None,
    ) -> Diagnostic:
        """Create a diagnostic, or update ``diagnostic_id`` in place."""
        async with self.session_factory() as session:
            if diagnostic_id is not None:
                diagnostic = await session.get(Diagnostic, diagnostic_id)
                if diagnostic is None:
                    raise NotFoundError("Diagnóstico não encontrado")
            else:
                diagnostic = Diagnostic(user_id=user_id, questionnaire_id=questionnaire_id)
                session.add(diagnostic)

            for name, value in values.items():
                setattr(diagnostic, name, value)
            await session.commit()
            return diagnostic

    async def _save_rule_based(
        self,
        questionnaire_id: uuid.UUID,
        user_id: uuid.UUID,
        basic: int,
        category: str,
        base_analysis: dict,
        diagnostic_id: uuid.UUID | None,
    ) -> Diagnostic:
        insights = scoring.basic_insights(category)
        values = {
            "status": "completed",
            "insights": list(insights.recommendations),
            "recommendations": list(insights.recommendations),
            "areas_focus": list(insights.areas_for_improvement),
            "score_intelligent": basic,
            "analysis_data": {**base_analysis, "error": AI_UNAVAILABLE_MESSAGE},
            "completed_at": datetime.now(timezone.utc),
        }

        if diagnostic_id is not None:
            try:
                return await self._save_diagnostic(questionnaire_id, user_id, values, diagnostic_id=diagnostic_id)
            except (NotFoundError, SQLAlchemyError) as exc:
                logger.warning("diagnostic_update_failed", diagnostic_id=str(diagnostic_id), error=str(exc))

        # Whatever row is left for the pair would block the create below
        await self._clear_stale_diagnostics(questionnaire_id, user_id)
        return await self._save_diagnostic(questionnaire_id, user_id, values)

    async def _clear_stale_diagnostics(self, questionnaire_id: uuid.UUID, user_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            removed = await self._purge_diagnostics(session, questionnaire_id, user_id)
            await session.commit()
        if removed:
            logger.warning(
                "stale_diagnostic_purged",
                questionnaire_id=str(questionnaire_id),
                user_id=str(user_id),
                count=removed,
            )

    # ---------- internals ----------

    @staticmethod
    async def _purge_diagnostics(session: AsyncSession, questionnaire_id: uuid.UUID, user_id: uuid.UUID) -> int:
        """Delete the pair's diagnostics; plans pointing at them are detached, not deleted."""
        pair_diagnostics = select(Diagnostic.id).where(
            Diagnostic.user_id == user_id,
            Diagnostic.questionnaire_id == questionnaire_id,
        )
        await session.execute(
            update(ActionPlan)
            .where(ActionPlan.diagnostic_id.in_(pair_diagnostics))
            .values(diagnostic_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(
            delete(Diagnostic)
            .where(Diagnostic.user_id == user_id, Diagnostic.questionnaire_id == questionnaire_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def _fetch(session: AsyncSession, questionnaire_id: uuid.UUID) -> Questionnaire:
        questionnaire = await session.get(Questionnaire, questionnaire_id)
        if questionnaire is None:
            raise NotFoundError("Questionário não encontrado")
        return questionnaire

    @staticmethod
    async def _fetch_active(session: AsyncSession, questionnaire_id: uuid.UUID) -> Questionnaire:
        questionnaire = await session.get(Questionnaire, questionnaire_id)
        if questionnaire is None or not questionnaire.is_active:
            raise NotFoundError("Questionário não encontrado ou inativo")
        return questionnaire

    @staticmethod
    async def _response_counts(session: AsyncSession, ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not ids:
            return {}
        result = await session.execute(
            select(QuestionnaireResponse.questionnaire_id, func.count(QuestionnaireResponse.id))
            .where(QuestionnaireResponse.questionnaire_id.in_(ids))
            .group_by(QuestionnaireResponse.questionnaire_id)
        )
        return {questionnaire_id: count for questionnaire_id, count in result.all()}

    @staticmethod
    def _check_author(questionnaire: Questionnaire, user_id: uuid.UUID, role: str, verb: str) -> None:
        if role != "master" and questionnaire.created_by != user_id:
            raise PermissionDeniedError(f"Você não tem permissão para {verb} este questionário")

    @staticmethod
    def _to_out(questionnaire: Questionnaire, response_count: int) -> QuestionnaireOut:
        out = QuestionnaireOut.model_validate(questionnaire)
        out.response_count = response_count
        return out
