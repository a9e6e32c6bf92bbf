"""
Public entry points of the assessment engine.

The request layer calls these with an AsyncSession and validated input:
- generate_quiz: build and persist an adaptive session
- complete_session: settle a finished session atomically
- get_session_questions: ordered questions of an existing session
- reset_retired_questions: return retired questions to the selection pool
"""

from assessment_engine.learning_engine.generator.service import (
    generate_quiz,
    get_session_questions,
)
from assessment_engine.learning_engine.history.service import (
    get_history_summary,
    reset_retired_questions,
)
from assessment_engine.learning_engine.settlement.service import (
    complete_session,
    get_session_summary,
)

__all__ = [
    "generate_quiz",
    "complete_session",
    "get_session_questions",
    "get_session_summary",
    "get_history_summary",
    "reset_retired_questions",
]
