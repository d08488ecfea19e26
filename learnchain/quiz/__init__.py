"""
Session-scoped quiz and answer storage.
"""

from learnchain.quiz.store import Answer, QuizStore, ScoreSummary

__all__ = ["Answer", "QuizStore", "ScoreSummary"]
