"""
learnchain - turn AI coding-assistant sessions into quizzes.
"""

__version__ = "0.1.0"
