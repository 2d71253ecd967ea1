"""
Question bank data access.
"""

from .repository import (
    QUESTION_COLUMNS,
    SORT_CLAUSES,
    QuestionRepository,
    sanitize_latex_for_rendering,
    sanitize_question_for_rendering,
)

__all__ = [
    'QUESTION_COLUMNS',
    'SORT_CLAUSES',
    'QuestionRepository',
    'sanitize_latex_for_rendering',
    'sanitize_question_for_rendering',
]
