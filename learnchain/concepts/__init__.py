"""
Concept extraction from normalized sessions.
"""

from learnchain.concepts.extractor import ConceptExtractor, extract_concepts
from learnchain.concepts.models import Concept, Difficulty

__all__ = [
    "Concept",
    "ConceptExtractor",
    "Difficulty",
    "extract_concepts",
]
