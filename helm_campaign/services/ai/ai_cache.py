"""Content-addressed, versioned, team-scoped cache for AI results.

Every lookup is keyed by team. Cached payloads were computed for notes
with the same content but possibly different IDs, so hits are re-pointed
at the notes of the current lookup.
"""

from datetime import timedelta
from typing import Dict, Optional, Sequence

from helm_campaign.core.config import settings
from helm_campaign.models import AICacheEntry, AICacheStats, CacheType
from helm_campaign.models.ai_models import (
    ClassificationResult,
    NoteForClassification,
    NoteWithClassification,
    RelationshipResult,
)
from helm_campaign.models.records import utc_now
from helm_campaign.repositories.storage import Storage
from helm_campaign.services.ai.cache_keys import (
    compute_content_hash,
    compute_context_hash,
    generate_classification_cache_key,
    generate_relationship_cache_key,
)
from helm_campaign.services.ai.cache_versions import get_current_version
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

CACHED_FROM_HASH_KEY = "_cached_from_hash"


class AICache:
    """Cache in front of an ``AIProvider``.

    Args:
        storage: Storage adapter holding the cache entries
        ttl: Lifetime of new entries (defaults to ``AI_CACHE_TTL_DAYS``)
        model_id: Model recorded on new entries
        expiring_soon: Window used by ``get_stats`` for ``entries_expiring_soon``
    """

    def __init__(
        self,
        storage: Storage,
        ttl: Optional[timedelta] = None,
        model_id: Optional[str] = None,
        expiring_soon: Optional[timedelta] = None,
    ):
        self.storage = storage
        self.ttl = ttl if ttl is not None else timedelta(days=settings.cache.ttl_days)
        self.model_id = model_id or settings.cache.model_id
        self.expiring_soon = (
            expiring_soon if expiring_soon is not None
            else timedelta(days=settings.cache.expiring_soon_days)
        )

    def _is_live(self, entry: AICacheEntry) -> bool:
        return entry.expires_at > utc_now()

    async def _record_hit(self, entry_id: str) -> None:
        try:
            await self.storage.increment_ai_cache_hit_count(entry_id)
        except Exception as e:
            LOGGER.warning(
                f"Failed to increment AI cache hit count: {e}",
                extra={"entry_id": entry_id},
            )

    # ========== CLASSIFICATIONS ==========

    async def get_classification(
        self,
        note: NoteForClassification,
        pc_names: Sequence[str],
        team_id: str,
    ) -> Optional[ClassificationResult]:
        """Cached classification for a note, or None on a miss or expired entry."""
        key = generate_classification_cache_key(note, pc_names, get_current_version(CacheType.CLASSIFICATION))
        entry = await self.storage.get_ai_cache_entry(
            CacheType.CLASSIFICATION,
            key.content_hash,
            key.algorithm_version,
            key.context_hash,
            team_id,
        )
        if entry is None or not self._is_live(entry):
            return None

        await self._record_hit(entry.id)
        return ClassificationResult.model_validate({**entry.result, "note_id": note.id})

    async def set_classification(
        self,
        note: NoteForClassification,
        pc_names: Sequence[str],
        result: ClassificationResult,
        team_id: str,
    ) -> None:
        key = generate_classification_cache_key(note, pc_names, get_current_version(CacheType.CLASSIFICATION))
        await self.storage.set_ai_cache_entry(AICacheEntry(
            cache_type=CacheType.CLASSIFICATION,
            content_hash=key.content_hash,
            algorithm_version=key.algorithm_version,
            context_hash=key.context_hash,
            team_id=team_id,
            result=result.model_dump(mode="json"),
            model_id=self.model_id,
            expires_at=utc_now() + self.ttl,
        ))

    async def get_classifications_batch(
        self,
        notes: Sequence[NoteForClassification],
        pc_names: Sequence[str],
        team_id: str,
    ) -> Dict[str, ClassificationResult]:
        """Look up many notes at once.

        Returns:
            note_id -> cached result, for hits only. Misses are simply absent.
        """
        if not notes:
            return {}

        version = get_current_version(CacheType.CLASSIFICATION)
        context_hash = compute_context_hash(pc_names)

        notes_by_hash: Dict[str, list] = {}
        for note in notes:
            notes_by_hash.setdefault(compute_content_hash(note.title, note.content), []).append(note)

        entries = await self.storage.get_ai_cache_entries_batch(
            CacheType.CLASSIFICATION,
            list(notes_by_hash),
            version,
            context_hash,
            team_id,
        )

        results: Dict[str, ClassificationResult] = {}
        for entry in entries:
            if not self._is_live(entry):
                continue
            # Notes with identical content share one entry.
            for note in notes_by_hash.get(entry.content_hash, []):
                results[note.id] = ClassificationResult.model_validate({**entry.result, "note_id": note.id})
            await self._record_hit(entry.id)

        LOGGER.debug(
            "AI cache batch lookup",
            extra={"team_id": team_id, "requested": len(notes), "hits": len(results)},
        )
        return results

    # ========== RELATIONSHIPS ==========

    async def get_relationship(
        self,
        from_note: NoteWithClassification,
        to_note: NoteWithClassification,
        team_id: str,
    ) -> Optional[RelationshipResult]:
        """Cached relationship between two notes, in its original direction."""
        key = generate_relationship_cache_key(from_note, to_note, get_current_version(CacheType.RELATIONSHIP))
        entry = await self.storage.get_ai_cache_entry(
            CacheType.RELATIONSHIP,
            key.pair_hash,
            key.algorithm_version,
            None,
            team_id,
        )
        if entry is None or not self._is_live(entry):
            return None

        await self._record_hit(entry.id)

        payload = dict(entry.result)
        cached_from_hash = payload.pop(CACHED_FROM_HASH_KEY, None)
        if cached_from_hash == compute_content_hash(to_note.title, to_note.content):
            source, target = to_note, from_note
        else:
            source, target = from_note, to_note

        payload["from_note_id"] = source.id
        payload["to_note_id"] = target.id
        return RelationshipResult.model_validate(payload)

    async def set_relationship(
        self,
        from_note: NoteWithClassification,
        to_note: NoteWithClassification,
        result: RelationshipResult,
        team_id: str,
    ) -> None:
        key = generate_relationship_cache_key(from_note, to_note, get_current_version(CacheType.RELATIONSHIP))

        # The pair hash is symmetric, so remember which side the relationship starts from.
        source = to_note if result.from_note_id == to_note.id else from_note
        payload = result.model_dump(mode="json")
        payload[CACHED_FROM_HASH_KEY] = compute_content_hash(source.title, source.content)

        await self.storage.set_ai_cache_entry(AICacheEntry(
            cache_type=CacheType.RELATIONSHIP,
            content_hash=key.pair_hash,
            algorithm_version=key.algorithm_version,
            context_hash=None,
            team_id=team_id,
            result=payload,
            model_id=self.model_id,
            expires_at=utc_now() + self.ttl,
        ))

    # ========== MAINTENANCE ==========

    async def invalidate_by_version(self, cache_type: CacheType, version: str) -> int:
        count = await self.storage.delete_ai_cache_by_version(CacheType(cache_type), version)
        LOGGER.info(
            "Invalidated AI cache by version",
            extra={"cache_type": CacheType(cache_type).value, "version": version, "count": count},
        )
        return count

    async def invalidate_by_team(self, team_id: str) -> int:
        count = await self.storage.delete_ai_cache_by_team(team_id)
        LOGGER.info("Invalidated AI cache by team", extra={"team_id": team_id, "count": count})
        return count

    async def prune_expired(self) -> int:
        return await self.storage.delete_expired_ai_cache_entries()

    async def get_stats(self) -> AICacheStats:
        return await self.storage.get_ai_cache_stats(self.expiring_soon)
