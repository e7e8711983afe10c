"""Tests for QuestionnaireService: submission pipeline and questionnaire management."""

import uuid

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DuplicateResponseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.db.models import ActionPlan, Diagnostic, Questionnaire, QuestionnaireResponse, User
from app.llm.fake import HAPPY_DIAGNOSTIC, GatewayFake
from app.schemas.questionnaires import OptionIn, QuestionIn, QuestionnaireCreate, QuestionnaireUpdate
from app.services.diagnostic_generator import FALLBACK_INSIGHTS
from app.services.questionnaire_service import AI_UNAVAILABLE_MESSAGE, QuestionnaireService
from app.services.scoring import basic_insights

pytestmark = pytest.mark.integration


async def _count(session_factory, model, *conds) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model).where(*conds))


async def _diagnostics(session_factory, user_id) -> list[Diagnostic]:
    async with session_factory() as session:
        result = await session.execute(select(Diagnostic).where(Diagnostic.user_id == user_id))
        return list(result.scalars().all())


async def _plans(session_factory, user_id) -> list[ActionPlan]:
    async with session_factory() as session:
        result = await session.execute(select(ActionPlan).where(ActionPlan.user_id == user_id))
        return list(result.scalars().all())


class TestRespond:
    async def test_happy_path_runs_the_whole_pipeline(self, session_factory, questionnaire, user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)

        result = await service.respond(questionnaire.id, answers, user.id)

        assert result.source == "ai"
        assert result.responses == 4
        assert result.diagnostic.score == 72
        assert result.diagnostic.category == "Bom"
        assert result.diagnostic.insights == HAPPY_DIAGNOSTIC["insights"]

        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.id == result.diagnostic.id
        assert diagnostic.status == "completed"
        assert diagnostic.completed_at is not None
        assert diagnostic.score_intelligent == 72
        assert diagnostic.analysis_data == {
            "basic_score": 35,
            "category": "Crítico",
            "totalQuestions": 4,
            "answeredQuestions": 4,
            "ai_analysis": HAPPY_DIAGNOSTIC["analysis_summary"],
        }

        [plan] = await _plans(session_factory, user.id)
        assert plan.diagnostic_id == diagnostic.id
        assert len(plan.goals) == 3

        # One diagnostic prompt, one action-plan prompt
        assert len(gateway_fake.prompts) == 2
        assert not GatewayFake.is_action_plan_prompt(gateway_fake.prompts[0])
        assert GatewayFake.is_action_plan_prompt(gateway_fake.prompts[1])

    async def test_only_numeric_scale_answers_are_scored(self, session_factory, questionnaire, user, question_ids, gateway_fake):
        scale_1, scale_2, choice, text = question_ids
        service = QuestionnaireService(session_factory, gateway_fake)

        await service.respond(questionnaire.id, {scale_1: "5", scale_2: "n/a", choice: "nunca", text: "7"}, user.id)

        async with session_factory() as session:
            rows = (
                await session.execute(select(QuestionnaireResponse).where(QuestionnaireResponse.user_id == user.id))
            ).scalars().all()
        scores = {str(row.question_id): row.score for row in rows}
        assert scores == {scale_1: 5.0, scale_2: None, choice: None, text: None}

        [diagnostic] = await _diagnostics(session_factory, user.id)
        # 5 / (5 * 4)
        assert diagnostic.analysis_data["basic_score"] == 25

    async def test_second_submission_is_rejected(self, session_factory, questionnaire, user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        await service.respond(questionnaire.id, answers, user.id)

        with pytest.raises(DuplicateResponseError) as exc_info:
            await service.respond(questionnaire.id, answers, user.id)

        assert exc_info.value.status_code == 403
        assert isinstance(exc_info.value, PermissionDeniedError)
        assert await _count(session_factory, QuestionnaireResponse, QuestionnaireResponse.user_id == user.id) == 4
        assert len(await _diagnostics(session_factory, user.id)) == 1

    async def test_unknown_question_persists_nothing(self, session_factory, questionnaire, user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        answers[str(uuid.uuid4())] = "3"

        with pytest.raises(NotFoundError):
            await service.respond(questionnaire.id, answers, user.id)

        assert await _count(session_factory, QuestionnaireResponse) == 0
        assert await _count(session_factory, Diagnostic) == 0
        assert gateway_fake.prompts == []

    async def test_malformed_question_id_is_not_found(self, session_factory, questionnaire, user, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        with pytest.raises(NotFoundError, match="abc"):
            await service.respond(questionnaire.id, {"abc": "3"}, user.id)

    async def test_empty_submission_is_rejected(self, session_factory, questionnaire, user, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        with pytest.raises(ValidationError):
            await service.respond(questionnaire.id, {}, user.id)
        assert await _count(session_factory, QuestionnaireResponse) == 0

    async def test_inactive_or_missing_questionnaire(self, session_factory, questionnaire, user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        with pytest.raises(NotFoundError):
            await service.respond(uuid.uuid4(), answers, user.id)

        async with session_factory() as session:
            q = await session.get(Questionnaire, questionnaire.id)
            q.is_active = False
            await session.commit()

        with pytest.raises(NotFoundError):
            await service.respond(questionnaire.id, answers, user.id)


class TestFallbacks:
    async def test_llm_failure_uses_rule_based_diagnostic(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake("llm_failure"))

        result = await service.respond(questionnaire.id, answers, user.id)

        expected = basic_insights("Crítico")
        assert result.source == "rule_based"
        assert result.diagnostic.score == 35
        assert result.diagnostic.category == "Crítico"

        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.status == "completed"
        assert diagnostic.insights == expected.recommendations
        assert diagnostic.recommendations == expected.recommendations
        assert diagnostic.areas_focus == expected.areas_for_improvement
        assert diagnostic.score_intelligent == 35
        assert diagnostic.analysis_data["error"] == AI_UNAVAILABLE_MESSAGE
        assert "ai_analysis" not in diagnostic.analysis_data

        # Plan generation failed too, and was swallowed
        assert await _plans(session_factory, user.id) == []

    async def test_unparseable_answer_uses_ai_fallback(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake("malformed"))

        result = await service.respond(questionnaire.id, answers, user.id)

        assert result.source == "ai_fallback"
        assert result.diagnostic.score == 50
        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.insights == FALLBACK_INSIGHTS
        assert diagnostic.status == "completed"

    async def test_plan_failure_keeps_the_diagnostic(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake("plan_failure"))

        result = await service.respond(questionnaire.id, answers, user.id)

        assert result.source == "ai"
        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.status == "completed"
        assert await _plans(session_factory, user.id) == []

    async def test_empty_task_list_still_yields_one_goal(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake("empty_tasks"))
        await service.respond(questionnaire.id, answers, user.id)

        [plan] = await _plans(session_factory, user.id)
        assert [goal.title for goal in plan.goals] == ["Revisar diagnóstico e definir metas iniciais"]


class TestStorageEdges:
    async def test_diagnostic_left_without_answers_is_replaced(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake())
        first = await service.respond(questionnaire.id, answers, user.id)

        # Recreating the questions cascades the answers away; the diagnostic stays
        async with session_factory() as session:
            await session.execute(delete(QuestionnaireResponse).where(QuestionnaireResponse.user_id == user.id))
            await session.commit()

        second = await service.respond(questionnaire.id, answers, user.id)

        assert second.source == "ai"
        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.id == second.diagnostic.id
        assert diagnostic.id != first.diagnostic.id
        assert diagnostic.status == "completed"
        plans = {plan.diagnostic_id for plan in await _plans(session_factory, user.id)}
        assert plans == {None, second.diagnostic.id}

        with pytest.raises(DuplicateResponseError):
            await service.respond(questionnaire.id, answers, user.id)

    async def test_leftover_diagnostic_with_model_down(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake("llm_failure"))
        await service.respond(questionnaire.id, answers, user.id)
        async with session_factory() as session:
            await session.execute(delete(QuestionnaireResponse).where(QuestionnaireResponse.user_id == user.id))
            await session.commit()

        result = await service.respond(questionnaire.id, answers, user.id)

        assert result.source == "rule_based"
        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.id == result.diagnostic.id
        assert diagnostic.status == "completed"

    async def test_processing_row_that_cannot_be_created(self, session_factory, questionnaire, user, answers, monkeypatch):
        service = QuestionnaireService(session_factory, GatewayFake())
        save = service._save_diagnostic
        calls = []

        async def fail_first(*args, **kwargs):
            calls.append(kwargs.get("diagnostic_id"))
            if len(calls) == 1:
                raise SQLAlchemyError("connection reset")
            return await save(*args, **kwargs)

        monkeypatch.setattr(service, "_save_diagnostic", fail_first)
        result = await service.respond(questionnaire.id, answers, user.id)

        assert result.source == "rule_based"
        assert result.diagnostic.score == 35
        # No update was attempted; the completed row was created directly
        assert calls == [None, None]
        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.status == "completed"
        assert diagnostic.analysis_data["error"] == AI_UNAVAILABLE_MESSAGE

    async def test_processing_row_that_cannot_be_updated(self, session_factory, questionnaire, user, answers, monkeypatch):
        service = QuestionnaireService(session_factory, GatewayFake())
        save = service._save_diagnostic

        async def fail_updates(*args, diagnostic_id=None, **kwargs):
            if diagnostic_id is not None:
                raise SQLAlchemyError("row locked")
            return await save(*args, **kwargs)

        monkeypatch.setattr(service, "_save_diagnostic", fail_updates)
        result = await service.respond(questionnaire.id, answers, user.id)

        assert result.source == "rule_based"
        # The stuck processing row is replaced, not duplicated
        [diagnostic] = await _diagnostics(session_factory, user.id)
        assert diagnostic.id == result.diagnostic.id
        assert diagnostic.status == "completed"

    async def test_concurrent_submission_is_a_duplicate(
        self, session_factory, questionnaire, user, answers, question_ids, monkeypatch
    ):
        service = QuestionnaireService(session_factory, GatewayFake())
        real_commit = AsyncSession.commit
        raced = []

        async def commit_after_rival(self):
            # The other request's answer lands between the check and this commit
            if not raced:
                raced.append(True)
                async with session_factory() as rival:
                    rival.add(
                        QuestionnaireResponse(
                            user_id=user.id,
                            questionnaire_id=questionnaire.id,
                            question_id=uuid.UUID(question_ids[0]),
                            response="5",
                            score=5,
                        )
                    )
                    await rival.commit()
            await real_commit(self)

        monkeypatch.setattr(AsyncSession, "commit", commit_after_rival)
        with pytest.raises(DuplicateResponseError):
            await service.respond(questionnaire.id, answers, user.id)
        monkeypatch.undo()

        assert await _count(session_factory, QuestionnaireResponse, QuestionnaireResponse.user_id == user.id) == 1
        assert await _diagnostics(session_factory, user.id) == []


class TestTransfer:
    async def test_transfer_replaces_previous_submission(self, session_factory, questionnaire, user, answers, question_ids):
        service = QuestionnaireService(session_factory, GatewayFake())
        first = await service.respond(questionnaire.id, answers, user.id)

        scale_1, scale_2, _, _ = question_ids
        second = await service.transfer(questionnaire.id, {scale_1: "5", scale_2: "5"}, user.id)

        diagnostics = await _diagnostics(session_factory, user.id)
        assert [d.id for d in diagnostics] == [second.diagnostic.id]
        assert diagnostics[0].analysis_data["basic_score"] == 100
        assert await _count(session_factory, QuestionnaireResponse, QuestionnaireResponse.user_id == user.id) == 2

        plans = {plan.diagnostic_id: plan for plan in await _plans(session_factory, user.id)}
        # The old plan survives, detached from the purged diagnostic
        assert set(plans) == {None, second.diagnostic.id}
        assert first.diagnostic.id not in plans

    async def test_transfer_without_prior_submission(self, session_factory, questionnaire, user, answers):
        service = QuestionnaireService(session_factory, GatewayFake())
        result = await service.transfer(questionnaire.id, answers, user.id)

        assert result.responses == 4
        assert len(await _diagnostics(session_factory, user.id)) == 1

    async def test_transfer_leaves_other_users_alone(self, session_factory, questionnaire, user, other_user, answers):
        service = QuestionnaireService(session_factory, GatewayFake())
        await service.respond(questionnaire.id, answers, other_user.id)
        await service.transfer(questionnaire.id, answers, user.id)

        assert len(await _diagnostics(session_factory, other_user.id)) == 1
        assert await _count(session_factory, QuestionnaireResponse, QuestionnaireResponse.user_id == other_user.id) == 4


def _create_payload(**overrides) -> QuestionnaireCreate:
    values = dict(
        title="Liderança 2024",
        type="lideranca",
        description="Avaliação de liderança",
        questions=[
            QuestionIn(question="Seu gestor dá feedback?", type="yes_no", order=1),
            QuestionIn(
                question="Nível de confiança",
                type="multiple_choice",
                order=2,
                options=[OptionIn(value="baixo", label="Baixo", score=1), OptionIn(value="alto", label="Alto", score=5)],
            ),
        ],
    )
    values.update(overrides)
    return QuestionnaireCreate(**values)


class TestManagement:
    async def test_create_and_get(self, session_factory, admin):
        service = QuestionnaireService(session_factory)
        created = await service.create(_create_payload(), admin.id)

        assert created.created_by == admin.id
        assert [q.question for q in created.questions] == ["Seu gestor dá feedback?", "Nível de confiança"]
        assert [o.value for o in created.questions[1].options] == ["baixo", "alto"]
        assert created.response_count == 0

        fetched = await service.get(created.id)
        assert fetched.id == created.id

    async def test_get_missing(self, session_factory):
        with pytest.raises(NotFoundError):
            await QuestionnaireService(session_factory).get(uuid.uuid4())

    async def test_list_hides_inactive_from_non_masters(self, session_factory, admin, questionnaire):
        service = QuestionnaireService(session_factory)
        inactive = await service.create(_create_payload(is_active=False), admin.id)

        visible = {q.id for q in await service.list_for_role("admin")}
        everything = {q.id for q in await service.list_for_role("master")}

        assert inactive.id not in visible
        assert everything == {questionnaire.id, inactive.id}
        assert [q.id for q in await service.list_for_role("master", type="lideranca")] == [inactive.id]

    async def test_list_includes_response_count(self, session_factory, questionnaire, user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        await service.respond(questionnaire.id, answers, user.id)

        [listed] = await service.list_for_role("user")
        assert listed.response_count == 4

    async def test_update_requires_master_or_creator(self, session_factory, questionnaire, master):
        service = QuestionnaireService(session_factory)
        async with session_factory() as session:
            stranger = User(name="Eva", email="eva@example.com", role="admin")
            session.add(stranger)
            await session.commit()

        with pytest.raises(PermissionDeniedError):
            await service.update(questionnaire.id, QuestionnaireUpdate(title="Outro título"), stranger.id, "admin")

        updated = await service.update(questionnaire.id, QuestionnaireUpdate(title="Outro título"), master.id, "master")
        assert updated.title == "Outro título"
        assert len(updated.questions) == 4

    async def test_update_with_questions_recreates_them(self, session_factory, questionnaire, admin):
        service = QuestionnaireService(session_factory)
        updated = await service.update(
            questionnaire.id,
            QuestionnaireUpdate(questions=[QuestionIn(question="Nova pergunta", type="scale")]),
            admin.id,
            "admin",
        )
        assert [q.question for q in updated.questions] == ["Nova pergunta"]
        assert updated.title == "Clima Organizacional"

    async def test_delete_rules(self, session_factory, questionnaire, user, answers, gateway_fake, admin):
        service = QuestionnaireService(session_factory, gateway_fake)
        spare = await service.create(_create_payload(), admin.id)

        with pytest.raises(PermissionDeniedError):
            await service.delete(spare.id, "admin")

        await service.respond(questionnaire.id, answers, user.id)
        with pytest.raises(PermissionDeniedError, match="respostas"):
            await service.delete(questionnaire.id, "master")

        await service.delete(spare.id, "master")
        with pytest.raises(NotFoundError):
            await service.get(spare.id)

    async def test_activating_one_deactivates_the_rest(self, session_factory, questionnaire, admin):
        service = QuestionnaireService(session_factory)
        other = await service.create(_create_payload(is_active=False), admin.id)

        toggled = await service.toggle_active(other.id, admin.id, "admin")

        assert toggled.is_active is True
        assert (await service.get(questionnaire.id)).is_active is False
        assert (await service.get_active()).id == other.id

        toggled = await service.toggle_active(other.id, admin.id, "admin")
        assert toggled.is_active is False
        with pytest.raises(NotFoundError):
            await service.get_active()

    async def test_toggle_requires_questions(self, session_factory, admin):
        service = QuestionnaireService(session_factory)
        empty = await service.create(_create_payload(questions=[], is_active=False), admin.id)
        with pytest.raises(PermissionDeniedError, match="pergunta"):
            await service.toggle_active(empty.id, admin.id, "admin")


class TestResponsesAndStatistics:
    async def test_statistics(self, session_factory, questionnaire, user, other_user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        await service.respond(questionnaire.id, answers, user.id)
        await service.respond(questionnaire.id, answers, other_user.id)

        stats = await service.statistics()
        assert stats.total_responses == 8
        assert stats.average_score == 3.5
        assert stats.unique_respondents == 2
        assert stats.questionnaires_answered == 1

        scoped = await service.statistics(uuid.uuid4())
        assert scoped.total_responses == 0
        assert scoped.average_score == 0

    async def test_response_listings(self, session_factory, questionnaire, user, answers, gateway_fake):
        service = QuestionnaireService(session_factory, gateway_fake)
        await service.respond(questionnaire.id, answers, user.id)

        mine = await service.user_responses(user.id)
        assert len(mine) == 4

        with pytest.raises(PermissionDeniedError):
            await service.questionnaire_responses(questionnaire.id, "user")
        assert len(await service.questionnaire_responses(questionnaire.id, "admin")) == 4


class TestPublicScore:
    async def test_scores_without_persisting(self, session_factory, questionnaire, question_ids):
        scale_1, scale_2, choice, text = question_ids
        service = QuestionnaireService(session_factory)

        result = await service.public_score(questionnaire.id, {scale_1: "8", scale_2: "6", choice: "as_vezes"})

        # (8 + 6 + 3) / (10 + 10 + 5)
        assert result.score == 68
        assert result.category == "Bom"
        assert result.responses == 3
        assert result.temp_data.questionnaire_id == questionnaire.id
        assert result.temp_data.answers[scale_1] == "8"
        assert await _count(session_factory, QuestionnaireResponse) == 0

    async def test_inactive_questionnaire_is_rejected(self, session_factory, questionnaire):
        async with session_factory() as session:
            q = await session.get(Questionnaire, questionnaire.id)
            q.is_active = False
            await session.commit()

        with pytest.raises(ValidationError):
            await QuestionnaireService(session_factory).public_score(questionnaire.id, {})
