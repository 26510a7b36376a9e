"""
Campaign AI Score

A 0-100 health score per campaign. Starts at 50 and moves up or down on
CTR and CPA versus channel benchmarks, wasted spend, ROAS and (Search only)
Quality Score. The worst critical factor becomes the recommendation.
"""
from typing import Dict, List, Optional

from adpilot.utils.helpers import clamp, round_half_up

BASE_SCORE = 50

# Industry benchmarks by advertising channel type
BENCHMARKS = {
    "SEARCH": {"ctr": {"good": 3.17, "warning": 2.0}, "cpa": {"good": 40, "warning": 80}},
    "DISPLAY": {"ctr": {"good": 0.46, "warning": 0.3}, "cpa": {"good": 60, "warning": 120}},
    "SHOPPING": {"ctr": {"good": 0.86, "warning": 0.5}, "cpa": {"good": 30, "warning": 60}},
    "VIDEO": {"ctr": {"good": 0.4, "warning": 0.2}, "cpa": {"good": 50, "warning": 100}},
    "PERFORMANCE_MAX": {"ctr": {"good": 2.0, "warning": 1.0}, "cpa": {"good": 35, "warning": 70}},
    "DEMAND_GEN": {"ctr": {"good": 1.5, "warning": 0.8}, "cpa": {"good": 45, "warning": 90}},
    "APP": {"ctr": {"good": 1.0, "warning": 0.5}, "cpa": {"good": 25, "warning": 50}},
}


def _factor(name: str, score: int, weight: int, status: str, description: str) -> Dict:
    return {"name": name, "score": score, "weight": weight, "status": status, "description": description}


def _fmt(value: float) -> str:
    """Benchmark values print like 3.17, 40, 0.4"""
    return f"{value:g}"


def _ctr_factor(ctr: float, impressions: int, benchmark: Dict) -> Dict:
    good, warning = benchmark["good"], benchmark["warning"]
    if impressions < 100:
        return _factor("CTR Performance", 0, 25, "warning", "Not enough impressions to evaluate CTR")
    if ctr >= good:
        return _factor("CTR Performance", 15, 25, "good",
                       f"CTR {ctr:.2f}% is above benchmark ({_fmt(good)}%)")
    if ctr >= warning:
        return _factor("CTR Performance", 5, 25, "warning",
                       f"CTR {ctr:.2f}% is below benchmark ({_fmt(good)}%)")
    return _factor("CTR Performance", -10, 25, "critical",
                   f"CTR {ctr:.2f}% is significantly below benchmark ({_fmt(good)}%)")


def _conversion_factor(spend: float, conversions: float, benchmark: Dict) -> Dict:
    good, warning = benchmark["good"], benchmark["warning"]
    if spend < 10:
        return _factor("Conversion Efficiency", 0, 25, "warning",
                       "Not enough spend to evaluate conversion efficiency")
    if conversions == 0:
        if spend > 100:
            return _factor("Conversion Efficiency", -20, 25, "critical",
                           f"${spend:.0f} spent with no conversions")
        return _factor("Conversion Efficiency", -5, 25, "warning", "No conversions yet")

    cpa = spend / conversions
    if cpa <= good:
        return _factor("Conversion Efficiency", 20, 25, "good",
                       f"CPA ${cpa:.2f} is excellent (target: ${_fmt(good)})")
    if cpa <= warning:
        return _factor("Conversion Efficiency", 5, 25, "warning",
                       f"CPA ${cpa:.2f} is above target (${_fmt(good)})")
    return _factor("Conversion Efficiency", -15, 25, "critical",
                   f"CPA ${cpa:.2f} is too high (target: ${_fmt(good)})")


def _waste_factor(spend: float, clicks: int, conversions: float) -> Dict:
    if spend < 10:
        return _factor("Wasted Spend", 0, 25, "good", "Minimal spend - no waste detected")
    if conversions == 0 and spend > 100:
        return _factor("Wasted Spend", -25, 25, "critical",
                       f"${spend:.0f} potential wasted spend (0 conversions)")
    if conversions == 0 and spend > 50:
        return _factor("Wasted Spend", -15, 25, "warning",
                       f"${spend:.0f} spent without conversions - monitor closely")

    conversion_rate = conversions / clicks * 100 if clicks else 0
    if conversion_rate < 1 and spend > 100:
        return _factor("Wasted Spend", -10, 25, "warning",
                       f"Low conversion rate ({conversion_rate:.2f}%) suggests inefficiency")
    if conversions > 0:
        return _factor("Wasted Spend", 15, 25, "good", "Spend is generating conversions efficiently")
    return _factor("Wasted Spend", 0, 25, "good", "No significant waste detected")


def _roas_factor(roas: float, conversions: float) -> Dict:
    if conversions == 0:
        return _factor("Return on Ad Spend", 0, 15, "warning", "No conversion value data available")
    if roas >= 4:
        return _factor("Return on Ad Spend", 10, 15, "good", f"ROAS {roas:.1f}x is excellent (>4x target)")
    if roas >= 2:
        return _factor("Return on Ad Spend", 5, 15, "good", f"ROAS {roas:.1f}x is profitable (>2x)")
    if roas >= 1:
        return _factor("Return on Ad Spend", 0, 15, "warning", f"ROAS {roas:.1f}x is break-even - needs improvement")
    if roas > 0:
        return _factor("Return on Ad Spend", -5, 15, "critical", f"ROAS {roas:.1f}x is unprofitable (<1x)")
    return _factor("Return on Ad Spend", 0, 15, "warning", "No ROAS data available")


def _quality_score_factor(quality_score: Optional[float]) -> Dict:
    if quality_score is not None and quality_score >= 7:
        return _factor("Quality Score", 5, 10, "good", f"Quality Score {quality_score:g}/10 is above average")
    if quality_score is not None and quality_score >= 5:
        return _factor("Quality Score", 0, 10, "warning", f"Quality Score {quality_score:g}/10 needs improvement")
    if quality_score is not None and quality_score > 0:
        return _factor("Quality Score", -5, 10, "critical", f"Quality Score {quality_score:g}/10 is hurting ad rank")
    return _factor("Quality Score", 0, 10, "warning", "Quality Score not available")


def calculate_ai_score(campaign: Dict) -> Dict:
    """
    Score one campaign.

    Args:
        campaign: dict with spend, clicks, impressions, conversions, and optionally
            ctr (%), roas, conversions_value, type, quality_score

    Returns:
        {total_score, factors, top_issue}
    """
    spend = float(campaign.get("spend") or 0)
    clicks = int(campaign.get("clicks") or 0)
    impressions = int(campaign.get("impressions") or 0)
    conversions = float(campaign.get("conversions") or 0)
    campaign_type = (campaign.get("type") or "SEARCH").upper()

    ctr = campaign.get("ctr")
    if ctr is None:
        ctr = clicks / impressions * 100 if impressions else 0
    roas = campaign.get("roas")
    if roas is None:
        value = float(campaign.get("conversions_value") or 0)
        roas = value / spend if spend else 0

    benchmark = BENCHMARKS.get(campaign_type, BENCHMARKS["SEARCH"])

    factors = [
        _ctr_factor(float(ctr), impressions, benchmark["ctr"]),
        _conversion_factor(spend, conversions, benchmark["cpa"]),
        _waste_factor(spend, clicks, conversions),
        _roas_factor(float(roas), conversions),
    ]
    if campaign_type == "SEARCH" and campaign.get("quality_score") is not None:
        factors.append(_quality_score_factor(campaign.get("quality_score")))

    total = BASE_SCORE + sum(f["score"] for f in factors)
    total_score = int(clamp(round_half_up(total), 0, 100))

    return {
        "total_score": total_score,
        "factors": factors,
        "top_issue": get_top_issue(factors),
    }


def get_top_issue(factors: List[Dict]) -> Optional[str]:
    """Lowest scoring critical factor, else lowest scoring warning"""
    for status in ("critical", "warning"):
        candidates = [f for f in factors if f["status"] == status]
        if candidates:
            return min(candidates, key=lambda f: f["score"])["description"]
    return None


def score_campaigns(campaigns: List[Dict]) -> List[Dict]:
    """Attach ai_score, ai_score_breakdown and ai_recommendation to each campaign"""
    scored = []
    for campaign in campaigns:
        breakdown = calculate_ai_score(campaign)
        scored.append({
            **campaign,
            "ai_score": breakdown["total_score"],
            "ai_score_breakdown": breakdown,
            "ai_recommendation": breakdown["top_issue"],
        })
    return scored
