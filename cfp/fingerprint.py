"""
Fingerprint fan-out engine.

For one business: build prompts for every (prompt type x model) pair, query
all of them concurrently, analyze each answer, drop invalid results, and
aggregate what is left into a FingerprintAnalysis with a visibility score
and an optional competitive leaderboard.

A single failed or slow query never fails the run; it becomes an
error-tagged LLMResult that the result filter excludes.
"""

import re
import random
import logging
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .config import DEFAULT_MODELS
from .errors import CFPError, sanitize_for_logging
from .llm_client import LLMClient
from .models import BusinessContext, FingerprintAnalysis, LLMResult, PROMPT_TYPES
from .prompts import PROMPT_TEMPERATURES, generate_prompts
from .response_analyzer import analyze_response, is_same_business
from .result_filter import filter_by_prompt_type, filter_valid_results
from .scoring import aggregate_results

logger = logging.getLogger(__name__)

QUERY_TIMEOUT = 60                 # seconds to wait on the whole fan-out
FINGERPRINT_CACHE_TTL = timedelta(hours=1)
LEADERBOARD_SIZE = 10


class FingerprintEngine:
    """
    Runs fingerprint fan-outs against an LLM client.

    Attributes:
        models: Judge roster (OpenRouter ids)
        model_weights: Aggregation weights (missing models weigh 1.0)
        query_timeout: Seconds to wait for all queries before giving up on stragglers
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        models: Optional[List[str]] = None,
        model_weights: Optional[Dict[str, float]] = None,
        query_timeout: float = QUERY_TIMEOUT,
        rng: Optional[random.Random] = None,
    ):
        self.llm_client = llm_client or LLMClient()
        self.models = list(models or DEFAULT_MODELS)
        self.model_weights = dict(model_weights or {})
        self.query_timeout = query_timeout
        self.rng = rng or random.Random()

    def run_fingerprint(
        self,
        ctx: BusinessContext,
        include_competitors: bool = True,
        force: bool = False,
        previous: Optional[Dict] = None,
    ) -> FingerprintAnalysis:
        """
        Measure AI visibility for one business.

        Args:
            ctx: Business snapshot.
            include_competitors: Build the competitive leaderboard.
            force: Ignore `previous` and always query the models.
            previous: Most recent stored analysis (dict); reused when fresher
                      than FINGERPRINT_CACHE_TTL and not forced.

        Returns:
            FingerprintAnalysis. With zero valid results the score is 0.
        """
        if not force and previous and _is_fresh(previous.get("generated_at") or previous.get("created_at")):
            logger.info("Reusing fingerprint for business %s from %s", ctx.business_id, previous.get("generated_at"))
            return analysis_from_dict(previous)

        prompts = generate_prompts(ctx, self.rng)
        tasks = [(model, prompt_type, prompts[prompt_type]) for prompt_type in PROMPT_TYPES for model in self.models]
        logger.info(
            "Fingerprinting business %s (%s): %d queries across %d models",
            ctx.business_id, ctx.name, len(tasks), len(self.models),
        )

        results = self._fan_out(ctx, tasks)
        valid = filter_valid_results(results)
        failed = len(results) - len(valid)
        if failed:
            logger.warning("Business %s: %d/%d queries failed or were invalid", ctx.business_id, failed, len(results))

        metrics = aggregate_results(valid, total_queries=len(tasks), model_weights=self.model_weights)
        score = metrics.score()

        leaderboard = None
        if include_competitors:
            leaderboard = build_competitive_leaderboard(
                filter_by_prompt_type(valid, "recommendation"), ctx.name
            )

        analysis = FingerprintAnalysis(
            business_id=ctx.business_id,
            business_name=ctx.name,
            visibility_score=score,
            mention_rate=round(metrics.mention_rate * 100, 2),
            sentiment_score=round(metrics.sentiment_score, 4),
            accuracy_score=round(metrics.accuracy_score, 4),
            avg_rank_position=metrics.avg_rank_position,
            llm_results=results,
            competitive_leaderboard=leaderboard,
        )
        logger.info(
            "Business %s fingerprint: score=%d mention_rate=%.1f%% valid=%d/%d",
            ctx.business_id, score, analysis.mention_rate, len(valid), len(tasks),
        )
        return analysis

    def _query_one(self, ctx: BusinessContext, model: str, prompt_type: str, prompt: str) -> LLMResult:
        try:
            response = self.llm_client.query(
                model,
                prompt,
                temperature=PROMPT_TEMPERATURES.get(prompt_type, 0.7),
            )
        except CFPError as e:
            return LLMResult(model=model, prompt_type=prompt_type, prompt=prompt, error=e.message)
        return analyze_response(response, ctx.name, prompt_type, prompt)

    def _fan_out(self, ctx: BusinessContext, tasks: List[tuple]) -> List[LLMResult]:
        if not tasks:
            return []
        pool = ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="fingerprint")
        try:
            future_map = {
                pool.submit(self._query_one, ctx, model, prompt_type, prompt): (model, prompt_type, prompt)
                for model, prompt_type, prompt in tasks
            }
            done, not_done = wait(future_map, timeout=self.query_timeout)
            results: List[LLMResult] = []
            for fut, (model, prompt_type, prompt) in future_map.items():
                if fut in not_done:
                    fut.cancel()
                    logger.warning("Query %s/%s timed out after %ss", model, prompt_type, self.query_timeout)
                    results.append(LLMResult(model=model, prompt_type=prompt_type, prompt=prompt, error="timeout"))
                    continue
                try:
                    results.append(fut.result())
                except Exception as e:
                    logger.exception("Query %s/%s crashed", model, prompt_type)
                    results.append(LLMResult(
                        model=model, prompt_type=prompt_type, prompt=prompt,
                        error=sanitize_for_logging(e),
                    ))
            return results
        finally:
            # Do not block on stragglers; their results are already discarded
            pool.shutdown(wait=False, cancel_futures=True)


# =============================================================================
# LEADERBOARD
# =============================================================================

def _numbered_position(response: str, name: str) -> Optional[int]:
    for line in response.split("\n"):
        m = re.match(r"^\s*(\d+)[.)]", line)
        if m and name.lower() in line.lower():
            return int(m.group(1))
    return None


def build_competitive_leaderboard(recommendation_results: List[LLMResult], business_name: str) -> Dict:
    """
    Rank the target and co-mentioned competitors across recommendation answers.

    Market share is each party's share of all mentions among the target and
    the listed competitors, so the listed shares sum to 100.
    """
    counts: Counter = Counter()
    positions: Dict[str, List[int]] = defaultdict(list)
    with_target: Dict[str, bool] = defaultdict(bool)

    target_mentions = 0
    target_positions: List[int] = []

    for r in recommendation_results:
        if r.mentioned:
            target_mentions += 1
            if r.rank_position is not None:
                target_positions.append(r.rank_position)
        for name in dict.fromkeys(r.competitor_mentions):
            if is_same_business(name, business_name):
                continue
            counts[name] += 1
            pos = _numbered_position(r.raw_response, name)
            if pos is not None:
                positions[name].append(pos)
            if r.mentioned:
                with_target[name] = True

    def _avg(values: List[int]) -> Optional[float]:
        return round(sum(values) / len(values), 2) if values else None

    ranked = sorted(
        counts.items(),
        key=lambda kv: (-kv[1], _avg(positions[kv[0]]) or float("inf"), kv[0]),
    )[:LEADERBOARD_SIZE]

    total_mentions = target_mentions + sum(c for _, c in ranked)

    def _share(count: int) -> float:
        return round(count / total_mentions * 100, 2) if total_mentions else 0.0

    competitors = [
        {
            "name": name,
            "mention_count": count,
            "avg_position": _avg(positions[name]),
            "appears_with_target": with_target[name],
            "market_share": _share(count),
        }
        for name, count in ranked
    ]
    return {
        "target": {
            "name": business_name,
            "mention_count": target_mentions,
            "avg_position": _avg(target_positions),
            "market_share": _share(target_mentions),
        },
        "competitors": competitors,
        "total_recommendation_queries": len(recommendation_results),
    }


# =============================================================================
# HELPERS
# =============================================================================

def _is_fresh(ts: Optional[str]) -> bool:
    if not ts:
        return False
    try:
        when = datetime.fromisoformat(str(ts).replace("Z", "+00:00"))
    except ValueError:
        return False
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - when <= FINGERPRINT_CACHE_TTL


def analysis_from_dict(data: Dict) -> FingerprintAnalysis:
    """Rebuild an analysis from its stored dict form (invalid results dropped)."""
    raw_results = data.get("llm_results") or []
    results = filter_valid_results(raw_results)
    return FingerprintAnalysis(
        business_id=int(data["business_id"]),
        business_name=data.get("business_name") or "",
        visibility_score=int(data.get("visibility_score") or 0),
        mention_rate=float(data.get("mention_rate") or 0.0),
        sentiment_score=float(data.get("sentiment_score") or 0.0),
        accuracy_score=float(data.get("accuracy_score") or 0.0),
        avg_rank_position=data.get("avg_rank_position"),
        llm_results=results,
        competitive_leaderboard=data.get("competitive_leaderboard"),
        generated_at=data.get("generated_at") or data.get("created_at"),
    )
