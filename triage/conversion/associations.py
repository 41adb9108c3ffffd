"""Advisory links between captures that share keywords."""

from typing import List, Optional, Tuple

import aiosqlite
import structlog

from ..captures.models import Capture
from ..captures.repository import CaptureRepository
from ..memory.keywords import extract_keywords

logger = structlog.get_logger()

Conn = Optional[aiosqlite.Connection]

RELATED_LIMIT = 5
SHARED_KEYWORD_SCORE = 2
CONTAINED_KEYWORD_SCORE = 1
SAME_CONTAINER_SCORE = 1


def score_pair(keywords: List[str], capture: Capture, other: Capture) -> int:
    """Similarity of ``other`` to a capture whose keywords are ``keywords``."""
    other_keywords = set(extract_keywords(other.content))
    other_text = other.content.casefold()

    score = 0
    for keyword in keywords:
        if keyword in other_keywords:
            score += SHARED_KEYWORD_SCORE
        elif keyword.casefold() in other_text:
            score += CONTAINED_KEYWORD_SCORE

    if capture.container is not None and capture.container == other.container:
        score += SAME_CONTAINER_SCORE
    return score


class AssociationBuilder:
    """Finds related captures and links them in both directions.

    Links are ids only. Either side may be deleted without touching the
    other; readers drop ids that no longer resolve.
    """

    def __init__(self, captures: CaptureRepository, limit: int = RELATED_LIMIT):
        self._captures = captures
        self._limit = limit

    async def find_related(self, capture: Capture, conn: Conn = None) -> List[Capture]:
        """Best scoring other captures, highest score first."""
        keywords = extract_keywords(capture.content)
        if not keywords:
            return []

        # Newest first so that equal scores favour recent captures
        candidates = reversed(await self._captures.list_all(conn))
        scored: List[Tuple[int, Capture]] = []
        for other in candidates:
            if other.id == capture.id:
                continue
            score = score_pair(keywords, capture, other)
            if score > 0:
                scored.append((score, other))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [other for _, other in scored[: self._limit]]

    async def establish(self, capture: Capture, conn: Conn = None) -> List[str]:
        """Link ``capture`` with its related captures.

        Merges the new matches into ``capture.related_capture_ids`` in memory
        (the caller saves it) and appends the capture's id to each related
        capture, saved here. Earlier links are kept so that captures already
        pointing here stay linked both ways.
        """
        related = await self.find_related(capture, conn)
        if not related:
            return list(capture.related_capture_ids)

        merged = list(capture.related_capture_ids)
        merged.extend(other.id for other in related if other.id not in merged)
        capture.related_capture_ids = merged
        for other in related:
            if capture.id not in other.related_capture_ids:
                other.related_capture_ids.append(capture.id)
                await self._captures.save(other, conn)

        logger.info(
            "Associations established",
            capture_id=capture.id,
            related_count=len(related),
        )
        return capture.related_capture_ids

    async def related_captures(self, capture: Capture, conn: Conn = None) -> List[Capture]:
        """Live related captures; ids of deleted captures are skipped."""
        if not capture.related_capture_ids:
            return []
        return await self._captures.get_many(capture.related_capture_ids, conn)
