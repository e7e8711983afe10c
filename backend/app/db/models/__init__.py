"""Re-export all models so Base.metadata sees them."""

from app.db.models.action_plan import ActionPlan, Goal
from app.db.models.diagnostic import Diagnostic
from app.db.models.questionnaire import Questionnaire, QuestionnaireOption, QuestionnaireQuestion
from app.db.models.questionnaire_response import QuestionnaireResponse
from app.db.models.user import User

__all__ = [
    "ActionPlan",
    "Diagnostic",
    "Goal",
    "Questionnaire",
    "QuestionnaireOption",
    "QuestionnaireQuestion",
    "QuestionnaireResponse",
    "User",
]
