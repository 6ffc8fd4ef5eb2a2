"""
Result filter: the validation boundary between raw fan-out output and scoring.

Accepts LLMResult instances or plain dicts (e.g. rows reloaded from the
fingerprints table). A result is valid only if it names a model and a known
prompt type and carries no error. Anything else is dropped, never coerced.
"""

from typing import Any, Dict, Iterable, List, Optional

from .models import LLMResult, PROMPT_TYPES, SENTIMENTS


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def is_valid_result(obj: Any) -> bool:
    if not isinstance(obj, (dict, LLMResult)):
        return False
    model = _get(obj, "model")
    prompt_type = _get(obj, "prompt_type")
    if not model or not isinstance(model, str):
        return False
    if prompt_type not in PROMPT_TYPES:
        return False
    if isinstance(obj, dict):
        return "error" not in obj or obj.get("error") is None
    return obj.error is None


def coerce_result(obj: Any) -> Optional[LLMResult]:
    """Validated LLMResult for a valid input, else None."""
    if not is_valid_result(obj):
        return None
    if isinstance(obj, LLMResult):
        return obj

    sentiment = obj.get("sentiment")
    if sentiment not in SENTIMENTS:
        sentiment = None
    rank = obj.get("rank_position")
    if not isinstance(rank, int) or isinstance(rank, bool) or rank < 1:
        rank = None
    accuracy = obj.get("accuracy")
    if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)):
        accuracy = None
    else:
        accuracy = max(0.0, min(1.0, float(accuracy)))
    competitors = obj.get("competitor_mentions")
    if not isinstance(competitors, list):
        competitors = []

    return LLMResult(
        model=obj["model"],
        prompt_type=obj["prompt_type"],
        mentioned=obj.get("mentioned") is True,
        sentiment=sentiment,
        rank_position=rank,
        accuracy=accuracy,
        raw_response=str(obj.get("raw_response") or ""),
        tokens_used=int(obj.get("tokens_used") or 0),
        competitor_mentions=[str(c) for c in competitors],
        prompt=str(obj.get("prompt") or ""),
    )


def filter_valid_results(results: Iterable[Any]) -> List[LLMResult]:
    out = []
    for r in results or []:
        coerced = coerce_result(r)
        if coerced is not None:
            out.append(coerced)
    return out


def filter_invalid_results(results: Iterable[Any]) -> List[Any]:
    return [r for r in results or [] if not is_valid_result(r)]


def filter_by_prompt_type(results: Iterable[Any], prompt_type: str) -> List[LLMResult]:
    return [r for r in filter_valid_results(results) if r.prompt_type == prompt_type]


def filter_mentioned(results: Iterable[Any]) -> List[LLMResult]:
    return [r for r in filter_valid_results(results) if r.mentioned]


def filter_ranked(results: Iterable[Any]) -> List[LLMResult]:
    return [r for r in filter_valid_results(results) if r.rank_position is not None]


def group_by_prompt_type(results: Iterable[Any]) -> Dict[str, List[LLMResult]]:
    valid = filter_valid_results(results)
    return {pt: [r for r in valid if r.prompt_type == pt] for pt in PROMPT_TYPES}
