"""Cheap structural similarity used to pick prototype pairs worth sampling."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np

from .config import DiagnosticsConfig
from .prototype import Prototype


@dataclass(slots=True)
class CandidatePair:
    prototype_a_id: str
    prototype_b_id: str
    cosine_similarity: float
    active_axis_jaccard: float
    sign_agreement: float

    @property
    def score(self) -> float:
        cosine = 0.0 if math.isnan(self.cosine_similarity) else self.cosine_similarity
        return (cosine + self.active_axis_jaccard + self.sign_agreement) / 3.0


def weight_cosine_similarity(weights_a: Mapping[str, float], weights_b: Mapping[str, float]) -> float:
    """Cosine similarity over the union of axes; NaN when either vector is zero."""
    axes = sorted(set(weights_a) | set(weights_b))
    a = np.array([weights_a.get(axis, 0.0) for axis in axes], dtype=float)
    b = np.array([weights_b.get(axis, 0.0) for axis in axes], dtype=float)
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return math.nan
    return max(-1.0, min(1.0, float(np.dot(a, b)) / norm))


def active_axis_jaccard(active_a: Iterable[str], active_b: Iterable[str]) -> float:
    set_a, set_b = set(active_a), set(active_b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def sign_agreement(weights_a: Mapping[str, float], weights_b: Mapping[str, float], epsilon: float) -> float:
    """Fraction of shared active axes where both weights have the same sign."""
    shared = [
        axis
        for axis in set(weights_a) & set(weights_b)
        if abs(weights_a[axis]) > epsilon and abs(weights_b[axis]) > epsilon
    ]
    if not shared:
        return 0.0
    agree = sum(1 for axis in shared if (weights_a[axis] > 0) == (weights_b[axis] > 0))
    return agree / len(shared)


def rank_candidate_pairs(
    prototypes: Iterable[Prototype],
    config: DiagnosticsConfig | None = None,
    limit: int | None = None,
) -> list[CandidatePair]:
    """Score every unordered pair and return them best first."""
    config = config or DiagnosticsConfig()
    eps = config.active_axis_epsilon
    pairs = []
    for a, b in itertools.combinations(list(prototypes), 2):
        pairs.append(
            CandidatePair(
                prototype_a_id=a.id,
                prototype_b_id=b.id,
                cosine_similarity=weight_cosine_similarity(a.weights, b.weights),
                active_axis_jaccard=active_axis_jaccard(a.active_axes(eps), b.active_axes(eps)),
                sign_agreement=sign_agreement(a.weights, b.weights, eps),
            )
        )
    pairs.sort(key=lambda p: (-p.score, p.prototype_a_id, p.prototype_b_id))
    if limit is not None:
        pairs = pairs[:limit]
    return pairs
