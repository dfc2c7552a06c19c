"""Decision support core: symptom matching, urgency scoring and risk prediction."""

from .knowledge_base import KnowledgeBase  # noqa: F401
from .service import DecisionSupportService  # noqa: F401

__all__ = ["KnowledgeBase", "DecisionSupportService"]
