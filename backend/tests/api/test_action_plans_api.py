"""Action plan API: generation, CRUD with goal reconciliation, filters and stats."""

import json
import uuid
from datetime import datetime, timedelta

import pytest

from app.llm.fake import HAPPY_PLAN, GatewayFake
from app.llm.gateway import get_gateway
from app.main import app

pytestmark = pytest.mark.integration


class _PlanAnswer:
    def __init__(self, text: str):
        self.text = text

    async def analyze(self, prompt: str) -> str:
        return self.text


async def _submit(client, questionnaire, answers, headers) -> str:
    response = await client.post(
        f"/api/questionnaires/{questionnaire.id}/respond", json={"responses": answers}, headers=headers
    )
    return response.json()["diagnostic"]["id"]


def _plan(**overrides) -> dict:
    body = {
        "title": "Plano de carreira",
        "description": "Metas do semestre",
        "category": "career",
        "goals": [{"title": "Mentoria"}, {"title": "Curso"}],
    }
    body.update(overrides)
    return body


async def test_submission_generates_plan(client, user, questionnaire, answers, token_for):
    headers = token_for(user)
    diagnostic_id = await _submit(client, questionnaire, answers, headers)

    plans = (await client.get("/api/action-plans", headers=headers)).json()

    [plan] = plans
    assert plan["diagnostic_id"] == diagnostic_id
    assert plan["status"] == "rascunho"
    assert plan["progress"] == 0
    assert len(plan["goals"]) == 3


async def test_generate_endpoint_is_idempotent(client, user, questionnaire, answers, token_for, gateway_fake):
    headers = token_for(user)
    diagnostic_id = await _submit(client, questionnaire, answers, headers)
    existing = (await client.get("/api/action-plans", headers=headers)).json()[0]

    response = await client.post(f"/api/action-plans/generate?diagnosticId={diagnostic_id}", headers=headers)

    assert response.status_code == 201
    assert response.json()["id"] == existing["id"]
    # Diagnostic + plan during submission, nothing more
    assert len(gateway_fake.prompts) == 2


async def test_generate_for_someone_elses_diagnostic(client, user, other_user, questionnaire, answers, token_for):
    diagnostic_id = await _submit(client, questionnaire, answers, token_for(user))

    forbidden = await client.post(
        f"/api/action-plans/generate?diagnosticId={diagnostic_id}", headers=token_for(other_user)
    )
    missing = await client.post(f"/api/action-plans/generate?diagnostic_id={uuid.uuid4()}", headers=token_for(user))

    assert forbidden.status_code == 403
    assert missing.status_code == 404


async def _submit_without_plan(client, questionnaire, answers, headers) -> str:
    app.dependency_overrides[get_gateway] = lambda: GatewayFake("plan_failure")
    try:
        return await _submit(client, questionnaire, answers, headers)
    finally:
        app.dependency_overrides.pop(get_gateway)


async def test_generate_accepts_both_query_spellings(client, user, questionnaire, answers, token_for, gateway_fake):
    headers = token_for(user)
    diagnostic_id = await _submit_without_plan(client, questionnaire, answers, headers)
    app.dependency_overrides[get_gateway] = lambda: gateway_fake
    assert (await client.get("/api/action-plans", headers=headers)).json() == []

    camel = await client.post(f"/api/action-plans/generate?diagnosticId={diagnostic_id}", headers=headers)
    snake = await client.post(f"/api/action-plans/generate?diagnostic_id={diagnostic_id}", headers=headers)

    assert camel.status_code == 201
    assert camel.json()["diagnostic_id"] == diagnostic_id
    assert snake.json()["id"] == camel.json()["id"]


async def test_generate_without_diagnostic_id_is_422(client, user, token_for):
    response = await client.post("/api/action-plans/generate", headers=token_for(user))
    assert response.status_code == 422


async def test_generate_with_far_deadline(client, user, questionnaire, answers, token_for):
    headers = token_for(user)
    diagnostic_id = await _submit_without_plan(client, questionnaire, answers, headers)
    plan_text = json.dumps({**HAPPY_PLAN, "tarefas": [{"descricao": "Longo prazo", "prazoDias": 10_000_000}]})
    app.dependency_overrides[get_gateway] = lambda: _PlanAnswer(plan_text)

    response = await client.post(f"/api/action-plans/generate?diagnosticId={diagnostic_id}", headers=headers)

    assert response.status_code == 201
    plan = response.json()
    start = datetime.fromisoformat(plan["start_date"])
    [goal] = plan["goals"]
    assert datetime.fromisoformat(goal["due_date"]) - start == timedelta(days=3650)


async def test_crud_and_reconciliation(client, user, other_user, token_for):
    headers = token_for(user)
    created = await client.post("/api/action-plans", json=_plan(), headers=headers)
    assert created.status_code == 201
    plan = created.json()
    mentoria = next(g for g in plan["goals"] if g["title"] == "Mentoria")

    updated = await client.patch(
        f"/api/action-plans/{plan['id']}",
        json={
            "status": "em_andamento",
            "goals": [{"id": mentoria["id"], "title": "Mentoria", "status": "concluida", "progress": 100}, {"title": "Livro"}],
        },
        headers=headers,
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["status"] == "em_andamento"
    assert sorted(g["title"] for g in body["goals"]) == ["Livro", "Mentoria"]

    assert (await client.get(f"/api/action-plans/{plan['id']}", headers=token_for(other_user))).status_code == 403
    assert (await client.delete(f"/api/action-plans/{plan['id']}", headers=token_for(other_user))).status_code == 403

    deleted = await client.delete(f"/api/action-plans/{plan['id']}", headers=headers)
    assert deleted.json() == {"id": plan["id"]}
    assert (await client.get(f"/api/action-plans/{plan['id']}", headers=headers)).status_code == 404


async def test_new_goal_without_title_is_400(client, user, token_for):
    headers = token_for(user)
    plan = (await client.post("/api/action-plans", json=_plan(), headers=headers)).json()

    response = await client.patch(
        f"/api/action-plans/{plan['id']}", json={"goals": [{"description": "sem título"}]}, headers=headers
    )

    assert response.status_code == 400
    after = (await client.get(f"/api/action-plans/{plan['id']}", headers=headers)).json()
    assert len(after["goals"]) == 2


async def test_null_for_required_field_is_422(client, user, token_for):
    headers = token_for(user)
    plan = (await client.post("/api/action-plans", json=_plan(), headers=headers)).json()

    for body in ({"title": None}, {"progress": None}, {"status": None}):
        response = await client.patch(f"/api/action-plans/{plan['id']}", json=body, headers=headers)
        assert response.status_code == 422, body

    cleared = await client.patch(f"/api/action-plans/{plan['id']}", json={"description": None}, headers=headers)
    assert cleared.status_code == 200
    after = cleared.json()
    assert after["description"] is None
    assert after["title"] == "Plano de carreira"
    assert after["progress"] == 0


async def test_invalid_enum_is_422(client, user, token_for):
    response = await client.post("/api/action-plans", json=_plan(category="finance"), headers=token_for(user))
    assert response.status_code == 422


async def test_filters_and_stats(client, user, other_user, admin, token_for):
    await client.post("/api/action-plans", json=_plan(), headers=token_for(user))
    await client.post("/api/action-plans", json=_plan(category="wellness", priority="alta"), headers=token_for(user))
    await client.post("/api/action-plans", json=_plan(status="concluido"), headers=token_for(other_user))

    careers = await client.get("/api/action-plans?category=career", headers=token_for(user))
    assert len(careers.json()) == 1
    both = await client.get("/api/action-plans?category=career&category=wellness", headers=token_for(user))
    assert len(both.json()) == 2

    mine = (await client.get("/api/action-plans/stats", headers=token_for(user))).json()
    assert mine["summary"]["total"] == 2
    assert mine["goals"]["total"] == 4
    assert mine["goals"]["pending"] == 4

    everything = (await client.get("/api/action-plans/stats", headers=token_for(admin))).json()
    assert everything["summary"]["total"] == 3
    assert everything["summary"]["completed"] == 1

    acme = (await client.get("/api/action-plans/admin/all?company_id=acme", headers=token_for(admin))).json()
    assert len(acme) == 2
    assert (await client.get("/api/action-plans/admin/all", headers=token_for(user))).status_code == 403
