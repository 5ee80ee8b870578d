"""AI provider interface for note classification and relationship extraction.

Implementations:
    LLMAIProvider: calls an external LLM through ``UnifiedLLMClient``
    MockAIProvider: deterministic keyword heuristics, for tests and offline runs

The enrichment worker receives a provider by injection and never inspects
which implementation it got.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from helm_campaign.models.ai_models import (
    ClassificationOptions,
    ClassificationResult,
    NoteForClassification,
    NoteWithClassification,
    RelationshipResult,
)

# (current, total, current_item)
ProgressCallback = Callable[[int, int, Optional[str]], None]


class AIProvider(ABC):
    """Classifies notes and extracts relationships between them."""

    name: str = "base"

    @abstractmethod
    async def classify_notes(
        self,
        notes: Sequence[NoteForClassification],
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[ClassificationOptions] = None,
    ) -> List[ClassificationResult]:
        """Classify notes into inferred entity types.

        Args:
            notes: Notes to classify
            on_progress: Optional callback invoked as batches complete
            options: Classification context such as player-character names

        Returns:
            One result per input note

        Raises:
            APIClientError: If the underlying AI service fails
        """

    @abstractmethod
    async def extract_relationships(
        self,
        notes: Sequence[NoteWithClassification],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[RelationshipResult]:
        """Find typed relationships between classified notes.

        Raises:
            APIClientError: If the underlying AI service fails
        """
