"""Shared weighted-vote decision rule for the ensemble and fusion layers."""

from __future__ import annotations

from typing import Dict, Tuple

from src.strategies.base import SignalDirection

# Scores closer than this are treated as tied
TIE_EPSILON = 1e-12


def empty_scores() -> Dict[SignalDirection, float]:
    return {d: 0.0 for d in SignalDirection}


def resolve_direction(
    scores: Dict[SignalDirection, float], threshold: float
) -> Tuple[SignalDirection, float]:
    """
    Pick the winning direction and its raw score.

    Buy or Sell wins only as the sole maximum above ``threshold``. Any tie
    for the maximum, Hold leading, or a maximum at or below the threshold
    resolves to Hold with score max(hold, max).
    """
    max_score = max(scores.values())
    leaders = [d for d, v in scores.items() if abs(v - max_score) <= TIE_EPSILON]
    if len(leaders) == 1 and leaders[0] != SignalDirection.HOLD and max_score > threshold:
        return leaders[0], max_score
    return SignalDirection.HOLD, max(scores[SignalDirection.HOLD], max_score)
