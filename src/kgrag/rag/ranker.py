"""Cosine-similarity ranking over the in-memory vector cache."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from kgrag.rag.schema import Segment

logger = logging.getLogger(__name__)

TOP_K = 10
MIN_SCORE = 0.3


@dataclass
class ScoredSegment:
    """A cached segment with its raw similarity to the query."""
    segment: Segment
    score: float

    @property
    def file_path(self) -> str:
        return self.segment.file_path

    @property
    def relevance(self) -> float:
        """Score on a 0-100 display scale."""
        return self.score * 100


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product over the product of Euclidean norms. Zero vectors score 0.0."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def rank(
    query_vector: Sequence[float],
    cache: Mapping[str, Sequence[Segment]],
    top_k: int = TOP_K,
    min_score: float = MIN_SCORE,
) -> list[ScoredSegment]:
    """Score every cached segment and return the best top_k above min_score.

    Results are sorted by descending score. Equal scores have no defined order.
    """
    dims = len(query_vector)
    results: list[ScoredSegment] = []

    for file_path, segments in cache.items():
        for segment in segments:
            if len(segment.vector) != dims:
                logger.debug(
                    "Skipping segment %s of %s: %d dimensions, query has %d",
                    segment.id, file_path, len(segment.vector), dims,
                )
                continue
            score = cosine_similarity(query_vector, segment.vector)
            if score > min_score:
                results.append(ScoredSegment(segment=segment, score=score))

    results.sort(key=lambda r: r.score, reverse=True)
    return results[:top_k]
