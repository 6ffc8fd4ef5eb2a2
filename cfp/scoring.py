"""
Visibility score calculation and aggregation.

score = clamp(0, 100, round(
    mention_rate * 40          # how often models name the business
  + sentiment_score * 25       # how they talk about it
  + confidence_level * 20      # how sure the analysis is
  + ranking_bonus              # up to 15 for being ranked near the top
  - success_penalty            # up to 10 for failed queries
))

All functions here are pure.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .models import LLMResult

MENTION_WEIGHT = 40
SENTIMENT_WEIGHT = 25
CONFIDENCE_WEIGHT = 20
MAX_RANKING_BONUS = 15
RANK_STEP_PENALTY = 3
MAX_SUCCESS_PENALTY = 10

SENTIMENT_VALUES = {"positive": 1.0, "neutral": 0.5, "negative": 0.0}

# Score delta beyond which the trend counts as moving
TREND_THRESHOLD = 5


def _clamp(value: float, min_val: float, max_val: float) -> float:
    return max(min_val, min(max_val, value))


def ranking_bonus(avg_rank_position: Optional[float]) -> float:
    if avg_rank_position is None:
        return 0.0
    return max(0.0, MAX_RANKING_BONUS - (avg_rank_position - 1) * RANK_STEP_PENALTY)


def success_penalty(successful_queries: int, total_queries: int) -> float:
    if total_queries <= 0:
        return float(MAX_SUCCESS_PENALTY)
    ratio = _clamp(successful_queries / total_queries, 0.0, 1.0)
    return (1 - ratio) * MAX_SUCCESS_PENALTY


def calculate_visibility_score(
    mention_rate: float,
    sentiment_score: float,
    confidence_level: float,
    avg_rank_position: Optional[float],
    successful_queries: int,
    total_queries: int,
) -> int:
    """
    Turn aggregate metrics into a 0-100 visibility score.

    Args:
        mention_rate: Fraction (0-1) of valid results that mention the business.
        sentiment_score: Mean sentiment (0-1).
        confidence_level: Mean analysis confidence (0-1).
        avg_rank_position: Mean rank, or None when never ranked.
        successful_queries: Queries that produced a valid result.
        total_queries: Queries attempted.

    Returns:
        Integer score in [0, 100]. Zero when no query succeeded.
    """
    if successful_queries <= 0:
        return 0
    raw = (
        mention_rate * MENTION_WEIGHT
        + sentiment_score * SENTIMENT_WEIGHT
        + confidence_level * CONFIDENCE_WEIGHT
        + ranking_bonus(avg_rank_position)
        - success_penalty(successful_queries, total_queries)
    )
    return int(_clamp(round(raw), 0, 100))


# =============================================================================
# AGGREGATION
# =============================================================================

@dataclass
class AggregateMetrics:
    mention_rate: float               # 0-1
    sentiment_score: float            # 0-1
    accuracy_score: float             # 0-1
    avg_rank_position: Optional[float]
    successful_queries: int
    total_queries: int

    def score(self) -> int:
        return calculate_visibility_score(
            self.mention_rate,
            self.sentiment_score,
            self.accuracy_score,
            self.avg_rank_position,
            self.successful_queries,
            self.total_queries,
        )


def _weighted_mean(pairs: Sequence[tuple]) -> Optional[float]:
    total_weight = sum(w for _, w in pairs)
    if not pairs or total_weight <= 0:
        return None
    return sum(v * w for v, w in pairs) / total_weight


def aggregate_results(
    valid_results: List[LLMResult],
    total_queries: int,
    model_weights: Optional[Dict[str, float]] = None,
) -> AggregateMetrics:
    """
    Aggregate validated results. Models missing from `model_weights` weigh 1.0.

    Sentiment None counts as neutral. Accuracy and rank only average over
    results that carry them.
    """
    weights = model_weights or {}

    def w(r: LLMResult) -> float:
        return float(weights.get(r.model, 1.0))

    if not valid_results:
        return AggregateMetrics(0.0, 0.0, 0.0, None, 0, total_queries)

    mention_rate = _weighted_mean([(1.0 if r.mentioned else 0.0, w(r)) for r in valid_results]) or 0.0
    sentiment = _weighted_mean(
        [(SENTIMENT_VALUES.get(r.sentiment or "neutral", 0.5), w(r)) for r in valid_results]
    )
    accuracy = _weighted_mean([(r.accuracy, w(r)) for r in valid_results if r.accuracy is not None])
    avg_rank = _weighted_mean([(float(r.rank_position), w(r)) for r in valid_results if r.rank_position is not None])

    return AggregateMetrics(
        mention_rate=mention_rate,
        sentiment_score=sentiment if sentiment is not None else 0.5,
        accuracy_score=accuracy if accuracy is not None else 0.0,
        avg_rank_position=round(avg_rank, 2) if avg_rank is not None else None,
        successful_queries=len(valid_results),
        total_queries=total_queries,
    )


# =============================================================================
# TREND
# =============================================================================

def compute_trend(history: Sequence[Dict]) -> Dict:
    """
    Compare the two most recent fingerprints (by generated_at / created_at).

    Returns:
        {"trend": "rising"|"falling"|"stable", "delta": int|None,
         "current": int|None, "previous": int|None}
    """
    def _ts(row: Dict) -> str:
        return str(row.get("generated_at") or row.get("created_at") or "")

    rows = sorted(history or [], key=_ts, reverse=True)
    if not rows:
        return {"trend": "stable", "delta": None, "current": None, "previous": None}
    current = int(rows[0].get("visibility_score") or 0)
    if len(rows) < 2:
        return {"trend": "stable", "delta": None, "current": current, "previous": None}
    previous = int(rows[1].get("visibility_score") or 0)
    delta = current - previous
    if delta > TREND_THRESHOLD:
        trend = "rising"
    elif delta < -TREND_THRESHOLD:
        trend = "falling"
    else:
        trend = "stable"
    return {"trend": trend, "delta": delta, "current": current, "previous": previous}
