"""
Quality Score prediction tests.

Guards against:
1. Historical Quality Score being overridden by the heuristic
2. Expected CTR escaping its 0.5-15% bounds when every penalty stacks
3. Recommendations drifting from the component scores that trigger them
"""
from adpilot.services.quality_score import (
    batch_predict_quality_scores,
    ctr_to_score,
    estimate_ad_relevance,
    estimate_expected_ctr,
    estimate_landing_page_experience,
    fraction_to_score,
    predict_quality_score,
)


def test_historical_quality_score_wins():
    result = predict_quality_score("running shoes", historical_quality_score=7, actual_ctr=4.2)
    assert result["predicted_score"] == 7
    assert result["confidence"] == 0.95
    assert result["components"]["expected_ctr"]["value"] == 4.2
    assert result["recommendations"] == ["Using actual Quality Score from account - this is accurate"]


def test_transactional_exact_match_predicts_excellent_score():
    result = predict_quality_score(
        "buy running shoes",
        match_type="exact",
        intent="transactional",
        page_load_time=1,
        mobile_optimized=True,
    )
    components = result["components"]
    assert components["expected_ctr"]["value"] == 3.64
    assert components["expected_ctr"]["score"] == 6
    assert components["ad_relevance"]["score"] == 10
    assert components["landing_page_experience"]["score"] == 10
    assert result["predicted_score"] == 8
    assert result["confidence"] == 0.7
    assert result["recommendations"] == [
        "Excellent predicted Quality Score - this keyword should perform well"
    ]


def test_broad_single_word_keyword_gets_ctr_and_match_type_advice():
    result = predict_quality_score("shoes", match_type="BROAD")
    recs = " ".join(result["recommendations"])
    assert "Low expected CTR (2.0%)" in recs
    assert "Broad match may reduce Quality Score" in recs


def test_expected_ctr_is_clamped():
    assert estimate_expected_ctr("BROAD", None, "HIGH", serp_ads_count=20, avg_position=8) == 0.5
    assert estimate_expected_ctr("EXACT", "transactional", "LOW", is_brand_keyword=True, avg_position=1) == 15


def test_ctr_bands():
    assert ctr_to_score(0.8) == 1
    assert ctr_to_score(3.0) == 6
    assert ctr_to_score(6.9) == 8
    assert ctr_to_score(12) == 10


def test_relevance_and_landing_components():
    assert round(estimate_ad_relevance("shoes"), 2) == 0.65
    assert round(estimate_ad_relevance("best trail running shoes", "EXACT", "commercial"), 2) == 0.95
    assert estimate_landing_page_experience(has_landing_page=False) == 0.5
    assert round(estimate_landing_page_experience(page_load_time=6, mobile_optimized=False), 2) == 0.45
    assert fraction_to_score(0.02) == 1
    assert fraction_to_score(1.0) == 10


def test_batch_keys_are_normalized():
    results = batch_predict_quality_scores([
        {"keyword": "  Running Shoes ", "match_type": "PHRASE", "intent": None},
        {"keyword": "trail shoes", "historical_quality_score": 4},
    ])
    assert set(results) == {"running shoes", "trail shoes"}
    assert results["trail shoes"]["predicted_score"] == 4
