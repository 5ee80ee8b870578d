"""Algorithm versions for cached AI results.

Bump the current version when prompts or heuristics change; entries from
older versions can then be dropped with ``AICache.invalidate_by_version``.
"""

from typing import Dict, List, Union

from pydantic import BaseModel

from helm_campaign.models.enums import CacheType


class VersionHistoryEntry(BaseModel):
    version: str
    date: str
    description: str


class AlgorithmVersionInfo(BaseModel):
    current: str
    history: List[VersionHistoryEntry]


AI_ALGORITHM_VERSIONS: Dict[CacheType, AlgorithmVersionInfo] = {
    CacheType.CLASSIFICATION: AlgorithmVersionInfo(
        current="1.0.0",
        history=[
            VersionHistoryEntry(
                version="1.0.0",
                date="2026-01-19",
                description="Initial classification prompt with PC context",
            ),
        ],
    ),
    CacheType.RELATIONSHIP: AlgorithmVersionInfo(
        current="1.0.0",
        history=[
            VersionHistoryEntry(
                version="1.0.0",
                date="2026-01-19",
                description="Initial relationship extraction prompt",
            ),
        ],
    ),
}


def get_current_version(cache_type: Union[CacheType, str]) -> str:
    return AI_ALGORITHM_VERSIONS[CacheType(cache_type)].current


def get_version_history(cache_type: Union[CacheType, str]) -> List[VersionHistoryEntry]:
    return list(AI_ALGORITHM_VERSIONS[CacheType(cache_type)].history)


def is_current_version(cache_type: Union[CacheType, str], version: str) -> bool:
    return get_current_version(cache_type) == version
