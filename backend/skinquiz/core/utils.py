import math
from typing import Dict, List, Sequence

import numpy as np

from .models import ConfidenceTier


def normalize_scores(raw: np.ndarray) -> np.ndarray:
    """
    Clip negative totals to zero and normalize into a distribution

    Args:
        raw: Net score per archetype

    Returns:
        Array of probabilities that sum to 1.0 (uniform if every score is zero)
    """
    clipped = np.clip(raw, 0.0, None)
    total = float(clipped.sum())
    if total <= 0.0:
        # Degenerate case: nothing favours anyone
        return np.full(len(raw), 1.0 / len(raw))
    return clipped / total


def calculate_entropy(probabilities: Sequence[float]) -> float:
    """
    Calculate Shannon entropy of probability distribution

    Args:
        probabilities: Probabilities in any order

    Returns:
        Entropy value (higher = more uncertain)
    """
    entropy = 0.0
    for prob in probabilities:
        if prob > 1e-10:  # Avoid log(0)
            entropy -= prob * math.log2(prob)
    return entropy


def rank_indices(probabilities: Sequence[float]) -> List[int]:
    """Indices by descending probability; equal values keep definition order"""
    return sorted(range(len(probabilities)), key=lambda i: (-probabilities[i], i))


def get_confidence_tier(confidence: float, high_threshold: float = 85.0,
                        medium_threshold: float = 60.0) -> ConfidenceTier:
    """Convert a 0-100 confidence into its tier"""
    if confidence >= high_threshold:
        return ConfidenceTier.HIGH
    elif confidence >= medium_threshold:
        return ConfidenceTier.MEDIUM
    else:
        return ConfidenceTier.LOW


def to_archetype_dict(values: np.ndarray, archetype_ids: List[str]) -> Dict[str, float]:
    return {archetype_id: float(value) for archetype_id, value in zip(archetype_ids, values)}
