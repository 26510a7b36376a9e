"""
Keyword ROI / CPA projections

Estimates what a keyword would return if added to a campaign, from search
volume, CPC, difficulty and intent plus the advertiser's own conversion
assumptions. Produces conservative / realistic / optimistic scenarios.
"""
from typing import Dict, List, Optional

from adpilot.utils.helpers import clamp, round_half_up

DEFAULT_ASSUMPTIONS = {
    'conversion_rate': 0.02,
    'avg_order_value': 100.0,
    'profit_margin': 0.3,
}
DEFAULT_CPC = 1.0

INTENT_BASE_CTR = {'transactional': 0.035, 'commercial': 0.028, 'navigational': 0.025}

# (roi above, label, color, recommendation, share of total budget)
ROI_BANDS = [
    (200, 'Excellent ROI', 'green', 'Very strong potential - prioritize this keyword in your campaigns', 0.25),
    (100, 'Great ROI', 'emerald', 'Good investment opportunity - allocate significant budget', 0.15),
    (50, 'Good ROI', 'blue', 'Positive returns expected - worth including in campaigns', 0.10),
    (0, 'Marginal ROI', 'yellow', 'Small profit margin - monitor closely and optimize for better performance', 0.05),
    (-50, 'Break-even', 'orange', 'Close to break-even - focus on conversion rate optimization before scaling', 0.01),
]
NEGATIVE_BAND = ('Negative ROI', 'red', 'Likely unprofitable - avoid or test with very small budget first', 0.01)


def estimate_impression_share(
    difficulty: Optional[float] = None,
    competition: Optional[str] = None,
    quality_score: Optional[int] = None,
) -> float:
    share = 0.5
    if difficulty is not None:
        if difficulty < 30:
            share = 0.7
        elif difficulty < 50:
            share = 0.6
        elif difficulty < 70:
            share = 0.4
        else:
            share = 0.2

    if competition == 'LOW':
        share *= 1.2
    elif competition == 'HIGH':
        share *= 0.8

    if quality_score is not None:
        if quality_score >= 8:
            share *= 1.2
        elif quality_score <= 4:
            share *= 0.8

    return clamp(share, 0.05, 1)


def estimate_click_through_rate(
    intent: Optional[str] = None,
    competition: Optional[str] = None,
    quality_score: Optional[int] = None,
    avg_position: Optional[float] = None,
) -> float:
    """CTR as a 0-1 fraction, clamped to 0.5%-15%."""
    ctr = INTENT_BASE_CTR.get(intent, 0.02)

    if competition == 'HIGH':
        ctr *= 0.85
    elif competition == 'LOW':
        ctr *= 1.15

    if quality_score is not None:
        if quality_score >= 8:
            ctr *= 1.3
        elif quality_score >= 6:
            ctr *= 1.1
        elif quality_score <= 4:
            ctr *= 0.8

    if avg_position is not None:
        if avg_position <= 1.5:
            ctr *= 1.4
        elif avg_position <= 2.5:
            ctr *= 1.2
        elif avg_position > 5:
            ctr *= 0.6

    return clamp(ctr, 0.005, 0.15)


def calculate_projection(
    search_volume: float,
    cpc: float,
    impression_share: float,
    ctr: float,
    conversion_rate: float,
    avg_order_value: float,
    profit_margin: float,
) -> Dict:
    impressions = round_half_up(search_volume * impression_share)
    clicks = round_half_up(impressions * ctr)
    cost = round(clicks * cpc, 2)
    conversions = round(clicks * conversion_rate, 2)
    revenue = round(conversions * avg_order_value, 2)
    profit = revenue * profit_margin

    roi = (profit - cost) / cost * 100 if cost > 0 else 0
    roas = revenue / cost if cost > 0 else 0
    cpa = cost / conversions if conversions > 0 else 0

    return {
        'estimated_impressions': impressions,
        'estimated_clicks': clicks,
        'estimated_conversions': conversions,
        'estimated_cost': cost,
        'estimated_revenue': revenue,
        'roi': round(roi, 1),
        'roas': round(roas, 2),
        'cpa': round(cpa, 2),
    }


def calculate_roi(
    keyword: str,
    search_volume: Optional[float] = None,
    cpc: Optional[float] = None,
    difficulty: Optional[float] = None,
    competition: Optional[str] = None,
    intent: Optional[str] = None,
    quality_score: Optional[int] = None,
    avg_position: Optional[float] = None,
    assumptions: Optional[Dict] = None,
) -> Dict:
    """
    Project ROI for one keyword.

    Args:
        assumptions: optional {ctr, conversion_rate, avg_order_value, profit_margin}
            overriding the defaults (falsy values fall back to defaults)

    Returns:
        {keyword, projections, assumptions, scenarios{conservative, realistic, optimistic}}
    """
    assumptions = assumptions or {}
    competition = competition.upper() if competition else None

    volume = search_volume or 0
    cpc = cpc or DEFAULT_CPC
    share = estimate_impression_share(difficulty, competition, quality_score)
    ctr = assumptions.get('ctr') or estimate_click_through_rate(intent, competition, quality_score, avg_position)
    cvr = assumptions.get('conversion_rate') or DEFAULT_ASSUMPTIONS['conversion_rate']
    aov = assumptions.get('avg_order_value') or DEFAULT_ASSUMPTIONS['avg_order_value']
    margin = assumptions.get('profit_margin') or DEFAULT_ASSUMPTIONS['profit_margin']

    realistic = calculate_projection(volume, cpc, share, ctr, cvr, aov, margin)
    conservative = calculate_projection(volume, cpc, share * 0.7, ctr * 0.8, cvr * 0.7, aov, margin)
    optimistic = calculate_projection(
        volume, cpc, min(1, share * 1.3), min(0.15, ctr * 1.2), cvr * 1.3, aov, margin
    )

    return {
        'keyword': keyword,
        'projections': realistic,
        'assumptions': {
            'impression_share': round(share, 4),
            'ctr': round(ctr, 4),
            'conversion_rate': cvr,
            'avg_order_value': aov,
            'profit_margin': margin,
        },
        'scenarios': {
            'conservative': conservative,
            'realistic': realistic,
            'optimistic': optimistic,
        },
    }


def _band(roi: float):
    for threshold, label, color, recommendation, pct in ROI_BANDS:
        if roi > threshold:
            return label, color, recommendation, pct
    return NEGATIVE_BAND


def classify_roi(estimate: Dict) -> Dict:
    label, color, recommendation, _ = _band(estimate['projections']['roi'])
    return {'label': label, 'color': color, 'recommendation': recommendation}


def recommend_budget(estimate: Dict, total_budget: float) -> Dict:
    """Share of a monthly budget this keyword deserves, scaled from its projection."""
    projection = estimate['projections']
    roi = projection['roi']
    _, _, _, pct = _band(roi)

    recommended = round_half_up(total_budget * pct)
    multiplier = recommended / max(1, projection['estimated_cost'])
    expected_revenue = projection['estimated_revenue'] * multiplier
    expected_profit = expected_revenue * estimate['assumptions']['profit_margin'] - recommended

    if roi > 100:
        reasoning = f"Strong ROI ({roi:.0f}%) justifies {pct * 100:.0f}% budget allocation"
    elif roi > 0:
        reasoning = f"Positive but modest ROI ({roi:.0f}%) suggests cautious {pct * 100:.0f}% allocation"
    else:
        reasoning = f"Negative ROI ({roi:.0f}%) - minimal budget for testing only"

    return {
        'recommended_budget': recommended,
        'reasoning': reasoning,
        'monthly_spend': recommended,
        'expected_revenue': round(expected_revenue, 2),
        'expected_profit': round(expected_profit, 2),
    }


def batch_calculate_roi(keywords: List[Dict], assumptions: Optional[Dict] = None) -> Dict[str, Dict]:
    results = {}
    for item in keywords:
        options = {k: v for k, v in item.items() if k != 'keyword' and v is not None}
        results[item['keyword'].lower().strip()] = calculate_roi(item['keyword'], assumptions=assumptions, **options)
    return results
