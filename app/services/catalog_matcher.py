"""
Catalog Matcher - Fuzzy match free-text line descriptions to inventory items
"""
from dataclasses import dataclass, replace
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Tuple
from uuid import UUID
import logging
import re

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models import InventoryItem
from .document_parser import ParsedDocument, NO_MATCH_CONFIDENCE, document_confidence

logger = logging.getLogger(__name__)

# Extraction is noisy, so even an exact name match is never reported as certain
MAX_CONFIDENCE = 0.99
MAX_ALTERNATES = 5


@dataclass(frozen=True)
class CatalogEntry:
    id: UUID
    name: str
    code: Optional[str] = None


@dataclass(frozen=True)
class MatchCandidate:
    entry: CatalogEntry
    score: float  # 0 = perfect, 1 = nothing in common

    @property
    def confidence(self) -> float:
        return min(max(1.0 - self.score, 0.0), MAX_CONFIDENCE)


@dataclass(frozen=True)
class MatchResult:
    query: str
    best: Optional[CatalogEntry]
    score: float
    confidence: float
    alternates: Tuple[MatchCandidate, ...] = ()

    @property
    def matched(self) -> bool:
        return self.best is not None


def _normalize(text: str) -> str:
    text = re.sub(r"[^a-z0-9]+", " ", (text or "").lower())
    return text.strip()


def _ratio(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def _token_similarity(query_tokens: List[str], name_tokens: List[str]) -> float:
    """Average of forward (query covered by name) and reverse coverage"""
    if not query_tokens or not name_tokens:
        return 0.0
    forward = sum(max(_ratio(q, n) for n in name_tokens) for q in query_tokens) / len(query_tokens)
    reverse = sum(max(_ratio(n, q) for q in query_tokens) for n in name_tokens) / len(name_tokens)
    return (forward + reverse) / 2


def similarity(query: str, entry: CatalogEntry) -> float:
    """0..1 similarity of a description to a catalog entry's name or code"""
    normalized_query = _normalize(query)
    normalized_name = _normalize(entry.name)
    if not normalized_query or not normalized_name:
        return 0.0

    query_tokens = normalized_query.split()
    name_score = max(
        _ratio(normalized_query, normalized_name),
        _token_similarity(query_tokens, normalized_name.split()),
    )

    code_score = 0.0
    if entry.code:
        normalized_code = _normalize(entry.code)
        compact_code = normalized_code.replace(" ", "")
        # Code printed on the slip, e.g. "AMX-500" read as "amx 500"
        if compact_code and (compact_code in query_tokens or (len(compact_code) >= 4 and compact_code in normalized_query.replace(" ", ""))):
            code_score = 1.0
        else:
            code_score = _ratio(normalized_query, normalized_code)

    return max(name_score, code_score)


class CatalogMatcher:
    """Ranks catalog entries against descriptions; never writes anything"""

    def __init__(self, catalog: Iterable[CatalogEntry], threshold: Optional[float] = None):
        self.catalog = list(catalog)
        self.threshold = settings.MATCH_SCORE_THRESHOLD if threshold is None else threshold

    def match(self, description: str) -> MatchResult:
        if not _normalize(description) or not self.catalog:
            return MatchResult(query=description or "", best=None, score=1.0, confidence=0.0)

        candidates = []
        for entry in self.catalog:
            score = round(1.0 - similarity(description, entry), 4)
            if score <= self.threshold:
                candidates.append(MatchCandidate(entry=entry, score=score))

        if not candidates:
            return MatchResult(query=description, best=None, score=1.0, confidence=0.0)

        candidates.sort(key=lambda c: (c.score, c.entry.name.lower()))
        best = candidates[0]
        return MatchResult(
            query=description,
            best=best.entry,
            score=best.score,
            confidence=round(best.confidence, 4),
            alternates=tuple(candidates[1:MAX_ALTERNATES + 1]),
        )

    def match_document(self, document: ParsedDocument) -> ParsedDocument:
        """Return a copy of the document with every line carrying its best match"""
        items = []
        for item in document.items:
            result = self.match(item.description)
            if result.matched:
                items.append(replace(
                    item,
                    matched_item_id=result.best.id,
                    matched_item_name=result.best.name,
                    confidence=result.confidence,
                ))
            else:
                items.append(replace(item, matched_item_id=None, matched_item_name=None, confidence=NO_MATCH_CONFIDENCE))

        items = tuple(items)
        matched = sum(1 for item in items if item.matched_item_id is not None)
        logger.info(f"Matched {matched}/{len(items)} document lines against {len(self.catalog)} catalog items")
        return replace(document, items=items, confidence=document_confidence(items))


def match_to_catalog(description: str, catalog: Iterable[CatalogEntry], threshold: Optional[float] = None) -> MatchResult:
    return CatalogMatcher(catalog, threshold).match(description)


def load_catalog(db: Session) -> List[CatalogEntry]:
    """Current catalog as match entries"""
    rows = db.query(InventoryItem.id, InventoryItem.item_name, InventoryItem.item_code).order_by(InventoryItem.item_name).all()
    return [CatalogEntry(id=row.id, name=row.item_name, code=row.item_code) for row in rows]
