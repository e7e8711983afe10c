from fastapi import APIRouter

from app.api.routes import action_plans, auth, diagnostics, health, public_questionnaires, questionnaires

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(questionnaires.router, prefix="/questionnaires", tags=["questionnaires"])
api_router.include_router(public_questionnaires.router, prefix="/public/questionnaires", tags=["public"])
api_router.include_router(diagnostics.router, prefix="/diagnostics", tags=["diagnostics"])
api_router.include_router(action_plans.router, prefix="/action-plans", tags=["action-plans"])
