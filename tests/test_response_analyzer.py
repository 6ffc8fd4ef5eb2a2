"""
Unit tests for response analysis.

  a) ranked list naming the business -> mentioned, rank 1, competitors extracted
  b) answer that never names the business -> not mentioned, no rank, neutral
  c) name variations (legal suffix, acronym) still count as a mention
  d) negative wording -> negative sentiment
  e) list noise (directories, prose fragments) is not reported as a competitor
"""

import os
import sys

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp.models import LLMResponse
from cfp.response_analyzer import (
    analyze_mention,
    analyze_response,
    analyze_sentiment,
    extract_list_names,
    generate_name_variations,
    is_same_business,
)

RANKED = (
    "Here are some of the best dental practices in San Jose:\n"
    "1. Acme Dental - great reviews and a friendly team\n"
    "2. Bright Smiles Dental - professional and reliable\n"
    "3. Downtown Dental Care - experienced staff\n"
)


def _response(content, model="openai/gpt-4-turbo"):
    return LLMResponse(content=content, tokens_used=100, model=model)


def test_ranked_list_mention_rank_and_competitors():
    result = analyze_response(_response(RANKED), "Acme Dental", "recommendation", "prompt")
    assert result.mentioned is True
    assert result.rank_position == 1
    assert result.sentiment == "positive"
    assert result.competitor_mentions == ["Bright Smiles Dental", "Downtown Dental Care"]
    assert result.error is None
    assert 0.0 <= result.accuracy <= 1.0
    assert result.model == "openai/gpt-4-turbo"
    assert result.tokens_used == 100


def test_rank_follows_business_line():
    text = (
        "Top picks:\n"
        "1. Bright Smiles Dental - modern office\n"
        "2. Acme Dental - family friendly\n"
    )
    result = analyze_response(_response(text), "Acme Dental", "recommendation")
    assert result.rank_position == 2
    assert result.competitor_mentions == ["Bright Smiles Dental"]


def test_not_mentioned():
    text = "I don't have specific details about that practice."
    result = analyze_response(_response(text), "Acme Dental", "factual")
    assert result.mentioned is False
    assert result.rank_position is None
    assert result.sentiment == "neutral"


def test_partial_mention_via_variation():
    mention = analyze_mention("Acme Dental is well known downtown.", "Acme Dental LLC")
    assert mention.mentioned is True
    assert mention.match_type == "partial"
    assert mention.confidence == 0.85


def test_exact_mention_confidence():
    mention = analyze_mention("I have heard good things about ACME DENTAL.", "Acme Dental")
    assert mention.match_type == "exact"
    assert mention.confidence == 0.95


def test_acronym_must_match_case():
    variations = generate_name_variations("Bay Area Plumbing")
    assert "BAP" in variations
    assert analyze_mention("BAP fixed our sink.", "Bay Area Plumbing").mentioned is True
    assert analyze_mention("a bap sandwich", "Bay Area Plumbing").mentioned is False


def test_negative_sentiment():
    text = "Acme Dental has had complaints about rude, unprofessional staff. I would avoid it."
    mention = analyze_mention(text, "Acme Dental")
    sentiment = analyze_sentiment(text, mention)
    assert sentiment.sentiment == "negative"


def test_list_noise_not_reported_as_competitor():
    text = (
        "1. Acme Dental - our pick\n"
        "2. Yelp - read reviews there\n"
        "3. Here are more options - see below\n"
        "- Bright Smiles Dental\n"
    )
    result = analyze_response(_response(text), "Acme Dental", "recommendation")
    assert "Yelp" not in result.competitor_mentions
    assert "Bright Smiles Dental" in result.competitor_mentions
    assert all(not c.startswith("Here are") for c in result.competitor_mentions)


def test_extract_list_names_order():
    assert extract_list_names(RANKED) == ["Acme Dental", "Bright Smiles Dental", "Downtown Dental Care"]


def test_is_same_business():
    assert is_same_business("Acme Dental", "acme dental")
    assert is_same_business("Acme Dental LLC", "Acme Dental")
    assert not is_same_business("Bright Smiles Dental", "Acme Dental")
