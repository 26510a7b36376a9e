"""
Quality Score prediction

Heuristic estimate of the Google Ads 1-10 Quality Score before a keyword has
history of its own. Three components, weighted like Google's own breakdown:

- Expected CTR              50%
- Ad relevance             30%
- Landing page experience  20%

When the account already reports a Quality Score for the keyword, that value
is returned as-is with high confidence.
"""
from typing import Dict, List, Optional

from adpilot.utils.helpers import clamp, round_half_up

# ---------------------------------------------------------------------------
# Weights and multipliers
# ---------------------------------------------------------------------------

COMPONENT_WEIGHTS = {
    'expected_ctr': 0.5,
    'ad_relevance': 0.3,
    'landing_page_experience': 0.2,
}

BASE_CTR = 2.0  # industry average search CTR, in %

MATCH_TYPE_CTR = {'EXACT': 1.3, 'PHRASE': 1.1}
INTENT_CTR = {'transactional': 1.4, 'commercial': 1.2, 'navigational': 1.1}
COMPETITION_CTR = {'HIGH': 0.7, 'LOW': 1.2}
BRAND_CTR_MULTIPLIER = 2.5

INTENT_RELEVANCE = {'transactional': 0.9, 'commercial': 0.8, 'navigational': 0.75}

# Upper bounds of each CTR band mapped to a 1-10 score
_CTR_BANDS = [(1, 1), (1.5, 2), (2, 3), (2.5, 4), (3, 5), (4, 6), (5, 7), (7, 8), (10, 9)]


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def estimate_expected_ctr(
    match_type: Optional[str] = None,
    intent: Optional[str] = None,
    competition: Optional[str] = None,
    serp_ads_count: Optional[int] = None,
    is_brand_keyword: bool = False,
    avg_position: Optional[float] = None,
) -> float:
    """Expected CTR in percent, clamped to 0.5-15."""
    ctr = BASE_CTR
    ctr *= MATCH_TYPE_CTR.get(match_type, 1.0)
    ctr *= INTENT_CTR.get(intent, 1.0)
    if is_brand_keyword:
        ctr *= BRAND_CTR_MULTIPLIER
    ctr *= COMPETITION_CTR.get(competition, 1.0)

    if serp_ads_count is not None:
        # Every ad above the fold steals some clicks
        ctr *= max(0.5, 1 - serp_ads_count * 0.05)

    if avg_position is not None:
        if avg_position <= 1.5:
            ctr *= 1.3
        elif avg_position <= 3:
            ctr *= 1.1
        elif avg_position > 5:
            ctr *= 0.7

    return clamp(ctr, 0.5, 15)


def ctr_to_score(ctr: float) -> int:
    for upper, score in _CTR_BANDS:
        if ctr < upper:
            return score
    return 10


def estimate_ad_relevance(keyword: str, match_type: Optional[str] = None, intent: Optional[str] = None) -> float:
    """Ad relevance as a 0-1 fraction."""
    relevance = INTENT_RELEVANCE.get(intent, 0.7)
    if match_type == 'EXACT':
        relevance += 0.1

    word_count = len(keyword.split(' '))
    if word_count >= 3:
        relevance += 0.05
    elif word_count == 1:
        relevance -= 0.05

    return clamp(relevance, 0, 1)


def estimate_landing_page_experience(
    has_landing_page: Optional[bool] = None,
    page_load_time: Optional[float] = None,
    mobile_optimized: Optional[bool] = None,
    intent: Optional[str] = None,
) -> float:
    """Landing page experience as a 0-1 fraction."""
    score = 0.5 if has_landing_page is False else 0.7

    if page_load_time is not None:
        if page_load_time < 2:
            score += 0.15
        elif page_load_time > 4:
            score -= 0.15

    if mobile_optimized is True:
        score += 0.1
    elif mobile_optimized is False:
        score -= 0.1

    if intent == 'transactional':
        score += 0.05

    return clamp(score, 0, 1)


def fraction_to_score(value: float) -> int:
    return int(clamp(round_half_up(value * 10), 1, 10))


def component_status(score: int) -> str:
    if score >= 7:
        return 'above_average'
    if score >= 5:
        return 'average'
    return 'below_average'


def _component(value: float, score: int, name: str) -> Dict:
    return {
        'value': value,
        'score': score,
        'weight': COMPONENT_WEIGHTS[name],
        'status': component_status(score),
    }


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------

def predict_quality_score(
    keyword: str,
    match_type: Optional[str] = None,
    intent: Optional[str] = None,
    competition: Optional[str] = None,
    actual_ctr: Optional[float] = None,
    avg_position: Optional[float] = None,
    historical_quality_score: Optional[int] = None,
    serp_ads_count: Optional[int] = None,
    has_landing_page: Optional[bool] = None,
    page_load_time: Optional[float] = None,
    mobile_optimized: Optional[bool] = None,
    is_brand_keyword: bool = False,
) -> Dict:
    """
    Predict the Quality Score for one keyword.

    Returns:
        {predicted_score, confidence, components{expected_ctr, ad_relevance,
        landing_page_experience}, recommendations}
    """
    match_type = match_type.upper() if match_type else None
    competition = competition.upper() if competition else None

    if historical_quality_score:
        score = int(historical_quality_score)
        return {
            'predicted_score': score,
            'confidence': 0.95,
            'components': {
                'expected_ctr': _component(actual_ctr or 2.0, score, 'expected_ctr'),
                'ad_relevance': _component(0.8, score, 'ad_relevance'),
                'landing_page_experience': _component(0.7, score, 'landing_page_experience'),
            },
            'recommendations': ['Using actual Quality Score from account - this is accurate'],
        }

    if actual_ctr is not None:
        ctr = actual_ctr
    else:
        ctr = estimate_expected_ctr(match_type, intent, competition, serp_ads_count, is_brand_keyword, avg_position)
    ctr_score = ctr_to_score(ctr)

    relevance = estimate_ad_relevance(keyword, match_type, intent)
    relevance_score = fraction_to_score(relevance)

    landing = estimate_landing_page_experience(has_landing_page, page_load_time, mobile_optimized, intent)
    landing_score = fraction_to_score(landing)

    weighted = (
        ctr_score * COMPONENT_WEIGHTS['expected_ctr']
        + relevance_score * COMPONENT_WEIGHTS['ad_relevance']
        + landing_score * COMPONENT_WEIGHTS['landing_page_experience']
    )
    predicted = int(clamp(round_half_up(weighted), 1, 10))

    confidence = 0.6
    if actual_ctr is not None:
        confidence += 0.2
    if avg_position is not None:
        confidence += 0.1
    if intent:
        confidence += 0.05
    if match_type:
        confidence += 0.05
    confidence = round(min(0.95, confidence), 2)

    recommendations: List[str] = []
    if ctr_score < 5:
        recommendations.append(
            f"Low expected CTR ({ctr:.1f}%) - consider using exact match and improving ad copy"
        )
    if relevance_score < 6:
        recommendations.append(
            "Ad relevance may be low - ensure keywords appear in ad headlines and descriptions"
        )
    if landing_score < 6:
        recommendations.append(
            "Landing page experience needs improvement - optimize load time and mobile experience"
        )
    if match_type == 'BROAD':
        recommendations.append(
            "Broad match may reduce Quality Score - consider using phrase or exact match"
        )
    if predicted >= 8:
        recommendations.append("Excellent predicted Quality Score - this keyword should perform well")
    elif predicted <= 4:
        recommendations.append("Low predicted Quality Score - may result in higher CPCs and lower ad positions")

    return {
        'predicted_score': predicted,
        'confidence': confidence,
        'components': {
            'expected_ctr': _component(round(ctr, 2), ctr_score, 'expected_ctr'),
            'ad_relevance': _component(round(relevance, 2), relevance_score, 'ad_relevance'),
            'landing_page_experience': _component(round(landing, 2), landing_score, 'landing_page_experience'),
        },
        'recommendations': recommendations,
    }


def batch_predict_quality_scores(keywords: List[Dict]) -> Dict[str, Dict]:
    """Predict for many keywords; results keyed by lowercased, stripped keyword."""
    results = {}
    for item in keywords:
        options = {k: v for k, v in item.items() if k != 'keyword' and v is not None}
        results[item['keyword'].lower().strip()] = predict_quality_score(item['keyword'], **options)
    return results
