"""
Keyword Factory

Expands seed keywords into variations, synonyms, modifier and long-tail
phrases, tags each with a suggested match type and search intent, and groups
them into ad-group sized clusters.
"""
import re
from typing import Dict, List, Optional

MAX_SEEDS = 20

LOCATION_GEO_CODES = {
    "US": "2840",
    "GB": "2826",
    "CA": "2124",
    "AU": "2036",
    "DE": "2276",
    "FR": "2250",
    "ES": "2724",
    "IT": "2380",
    "PT": "2620",
    "BR": "2076",
    "IN": "2356",
    "SG": "2702",
    "AE": "2784",
}
DEFAULT_GEO_CODE = "2840"

MODIFIERS = {
    "transactional": ["buy", "purchase", "order", "shop", "get", "deal", "discount", "cheap",
                      "affordable", "price", "cost", "sale"],
    "informational": ["how to", "what is", "guide", "tutorial", "learn", "tips", "best practices", "examples"],
    "commercial": ["best", "top", "review", "compare", "vs", "alternative", "comparison", "pros cons"],
    "local": ["near me", "nearby", "local", "in [city]", "closest"],
}

NEGATIVE_INDICATORS = {
    "job_seekers": ["jobs", "careers", "hiring", "salary", "interview", "resume", "cv", "employment"],
    "diy_learners": ["diy", "how to make", "tutorial", "free template", "download free"],
    "wrong_intent": ["login", "sign in", "support", "complaint", "refund", "return"],
}

NEGATIVE_REASONS = {
    "job_seekers": ("Job seeker traffic - unlikely to convert", "informational"),
    "diy_learners": ("DIY/free seekers - low purchase intent", "informational"),
    "wrong_intent": ("Existing customer or wrong intent", "navigational"),
}

SYNONYM_MAP = {
    "buy": ["purchase", "order", "get", "shop for"],
    "cheap": ["affordable", "budget", "low cost", "inexpensive", "economical"],
    "best": ["top", "leading", "premium", "quality", "excellent"],
    "fast": ["quick", "rapid", "speedy", "express", "instant"],
    "online": ["digital", "virtual", "internet", "web"],
    "service": ["services", "solution", "solutions", "provider"],
    "software": ["tool", "platform", "app", "application", "system"],
    "agency": ["company", "firm", "consultant", "consultancy"],
    "marketing": ["advertising", "promotion", "ads"],
    "seo": ["search engine optimization", "organic search", "search optimization"],
    "ppc": ["pay per click", "paid search", "sem", "google ads"],
}

LEADING_ADJECTIVES = ("best", "top", "cheap", "fast", "professional", "quality", "premium")
HIGH_INTENT_WORDS = ("buy", "purchase", "order", "price", "cost")
NAVIGATIONAL_SIGNALS = ("login", "sign in", "account", "support")
CLUSTER_STOP_WORDS = ("best", "top", "cheap", "free", "online")

INTENT_PRIORITY = {"transactional": 3, "commercial": 2, "informational": 1, "navigational": 0}

DEFAULT_OPTIONS = {
    "generate_variations": True,
    "generate_synonyms": True,
    "suggest_match_types": True,
    "include_negatives": True,
    "enrich_with_metrics": False,
    "metrics_providers": ["google_ads"],
    "max_keywords_to_enrich": 50,
    "min_search_volume": 0,
    "sort_by_metrics": True,
    "target_location": "US",
    "language": "en",
}


def geo_code_for(location: Optional[str]) -> str:
    return LOCATION_GEO_CODES.get((location or "US").upper(), DEFAULT_GEO_CODE)


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def generate_variations(keyword: str) -> List[str]:
    """Plural/singular toggles, reversed pairs and trailing adjectives"""
    keyword = keyword.lower().strip()
    words = keyword.split()
    variations = []

    for i, word in enumerate(words):
        if word.endswith("s") and len(word) > 3:
            variations.append(" ".join(words[:i] + [word[:-1]] + words[i + 1:]))
        elif not word.endswith("s") and len(word) > 2:
            variations.append(" ".join(words[:i] + [word + "s"] + words[i + 1:]))

    if 2 <= len(words) <= 4:
        if len(words) == 2:
            variations.append(f"{words[1]} {words[0]}")
        if words[0] in LEADING_ADJECTIVES:
            variations.append(" ".join(words[1:] + [words[0]]))

    return [v for v in _dedupe(variations) if v != keyword]


def generate_synonyms(keyword: str) -> List[str]:
    keyword = keyword.lower().strip()
    words = keyword.split()
    synonyms = []
    for i, word in enumerate(words):
        for synonym in SYNONYM_MAP.get(word, []):
            synonyms.append(" ".join(words[:i] + [synonym] + words[i + 1:]))
    return [s for s in _dedupe(synonyms) if s != keyword]


def _keyword(keyword: str, kw_type: str, source: str, match_type: str, intent: str, **extra) -> Dict:
    return {
        "keyword": keyword,
        "type": kw_type,
        "source": source,
        "suggested_match_type": match_type,
        "estimated_intent": intent,
        **extra,
    }


def add_modifiers(keyword: str) -> List[Dict]:
    base = keyword.lower().strip()
    results = [
        _keyword(f"{mod} {base}", "modifier", "transactional_modifier", "PHRASE", "transactional")
        for mod in MODIFIERS["transactional"][:5]
    ]
    results += [
        _keyword(f"{mod} {base}", "modifier", "commercial_modifier", "PHRASE", "commercial")
        for mod in MODIFIERS["commercial"][:3]
    ]
    results.append(_keyword(f"{base} near me", "modifier", "local_modifier", "PHRASE", "transactional"))
    return results


def generate_long_tail(keyword: str) -> List[Dict]:
    base = keyword.lower().strip()
    patterns = [
        (f"{base} for small business", "commercial"),
        (f"{base} for beginners", "informational"),
        (f"professional {base}", "commercial"),
        (f"{base} pricing", "commercial"),
        (f"{base} free trial", "transactional"),
        (f"{base} reviews", "commercial"),
        (f"{base} examples", "informational"),
        (f"affordable {base}", "transactional"),
    ]
    return [
        _keyword(text, "long_tail", "long_tail_pattern",
                 "PHRASE" if intent == "transactional" else "BROAD", intent)
        for text, intent in patterns
    ]


def suggest_negatives(keyword: str) -> List[Dict]:
    """Negative keyword candidates for job seekers, DIY learners and wrong intent"""
    results = []
    for group, terms in NEGATIVE_INDICATORS.items():
        reason, intent = NEGATIVE_REASONS[group]
        for term in terms:
            results.append(_keyword(term, "variation", "negative_suggestion", "PHRASE", intent,
                                    negative_candidate=True, negative_reason=reason))
    return results


def suggest_match_type(keyword: str) -> str:
    words = keyword.lower().split()
    if len(words) <= 2 and any(w in HIGH_INTENT_WORDS for w in words):
        return "EXACT"
    if len(words) == 1:
        return "EXACT"
    if len(words) >= 4:
        return "BROAD"
    return "PHRASE"


def estimate_intent(keyword: str) -> str:
    lower = keyword.lower()
    if any(m in lower for m in MODIFIERS["transactional"]):
        return "transactional"
    if any(m in lower for m in MODIFIERS["informational"]):
        return "informational"
    if any(m in lower for m in MODIFIERS["commercial"]):
        return "commercial"
    if any(m in lower for m in NAVIGATIONAL_SIGNALS):
        return "navigational"
    return "commercial"


def cluster_keywords(keywords: List[Dict]) -> List[Dict]:
    """Group by first significant word, falling back to intent"""
    clusters: Dict[str, List[Dict]] = {}
    for kw in keywords:
        theme = kw["estimated_intent"]
        for word in kw["keyword"].split():
            if len(word) > 3 and word.lower() not in CLUSTER_STOP_WORDS:
                theme = word.lower()
                break
        clusters.setdefault(theme, []).append(kw)

    return [
        {
            "theme": theme,
            "keywords": members,
            "suggested_ad_group": f"{theme[:1].upper()}{theme[1:]} Keywords",
        }
        for theme, members in clusters.items()
    ]


def _generated(keyword: str, kw_type: str, source: str, suggest_match: bool) -> Dict:
    return _keyword(
        keyword, kw_type, source,
        suggest_match_type(keyword) if suggest_match else "BROAD",
        estimate_intent(keyword),
    )


def generate_keywords(seeds: List[str], options: Optional[Dict] = None) -> Dict:
    """
    Expand seeds into a deduplicated keyword list.

    Returns:
        {keywords, negative_keywords, clusters, stats}
    """
    opts = {**DEFAULT_OPTIONS, **(options or {})}
    keywords: List[Dict] = []
    clean_seeds = []

    for seed in seeds[:MAX_SEEDS]:
        clean = (seed or "").lower().strip()
        if not clean:
            continue
        clean_seeds.append(clean)

        keywords.append(_generated(clean, "seed", "user_input", opts["suggest_match_types"]))
        if opts["generate_variations"]:
            keywords += [_generated(v, "variation", "variation_generator", opts["suggest_match_types"])
                         for v in generate_variations(clean)]
        if opts["generate_synonyms"]:
            keywords += [_generated(s, "synonym", "synonym_generator", opts["suggest_match_types"])
                         for s in generate_synonyms(clean)]
        keywords += add_modifiers(clean)
        keywords += generate_long_tail(clean)

    negatives = suggest_negatives(clean_seeds[0]) if opts["include_negatives"] and clean_seeds else []

    unique: Dict[str, Dict] = {}
    for kw in keywords:
        unique.setdefault(kw["keyword"], kw)

    return summarize(list(unique.values()), negatives)


def summarize(keywords: List[Dict], negatives: List[Dict]) -> Dict:
    clusters = cluster_keywords([k for k in keywords if not k.get("negative_candidate")])
    return {
        "keywords": keywords,
        "negative_keywords": negatives,
        "clusters": clusters,
        "stats": build_stats(keywords, negatives, clusters),
    }


def build_stats(keywords: List[Dict], negatives: List[Dict], clusters: List[Dict]) -> Dict:
    def count(key: str, value: str) -> int:
        return sum(1 for k in keywords if k.get(key) == value)

    return {
        "total_generated": len(keywords),
        "by_type": {t: count("type", t) for t in ("seed", "variation", "synonym", "modifier", "long_tail")},
        "by_source": {
            "local": sum(1 for k in keywords if "google" not in (k.get("source") or "")),
            "google_ads": count("source", "google_ads_suggestion"),
            "user_input": count("source", "user_input"),
        },
        "by_intent": {i: count("estimated_intent", i) for i in INTENT_PRIORITY},
        "by_match_type": {m: count("suggested_match_type", m) for m in ("EXACT", "PHRASE", "BROAD")},
        "negatives_suggested": len(negatives),
        "clusters": len(clusters),
    }


def prioritize_for_enrichment(keywords: List[Dict], limit: int) -> List[str]:
    """Seeds first, then by intent (transactional > commercial > informational > navigational)"""
    candidates = [k for k in keywords if not k.get("negative_candidate")]
    ordered = sorted(
        candidates,
        key=lambda k: (k["type"] != "seed", -INTENT_PRIORITY.get(k["estimated_intent"], 0)),
    )
    return [k["keyword"] for k in ordered[:limit]]


def apply_enrichment(keywords: List[Dict], enriched: Dict[str, Dict], min_search_volume: int = 0,
                     sort_by_metrics: bool = True) -> List[Dict]:
    """
    Merge {keyword: {metrics, opportunity_score}} into the generated list.

    Keywords the provider returned that were not generated locally are added
    as google_ads_suggestion seeds.
    """
    merged = []
    seen = set()
    for kw in keywords:
        data = enriched.get(kw["keyword"])
        if data and data.get("metrics"):
            kw = {**kw, "metrics": data["metrics"], "opportunity_score": data.get("opportunity_score")}
        merged.append(kw)
        seen.add(kw["keyword"].lower())

    for keyword, data in enriched.items():
        if keyword.lower() not in seen and data.get("metrics"):
            merged.append(_keyword(
                keyword, "seed", "google_ads_suggestion", suggest_match_type(keyword), estimate_intent(keyword),
                metrics=data["metrics"], opportunity_score=data.get("opportunity_score"),
            ))

    if min_search_volume > 0:
        merged = [
            k for k in merged
            if not k.get("metrics") or k["metrics"].get("search_volume") is None
            or k["metrics"]["search_volume"] >= min_search_volume
        ]

    if sort_by_metrics:
        # stable sort keeps generation order among unscored keywords
        merged.sort(key=lambda k: -(k.get("opportunity_score") or 0))

    return merged


# Search-term patterns that rarely convert, by category
SEARCH_TERM_NEGATIVE_PATTERNS = {
    "free": ["free", "gratis", "no cost", "complimentary", "freebie", "giveaway", "free trial", "free download"],
    "jobs": ["jobs", "careers", "hiring", "employment", "salary", "resume", "cv", "job opening", "internship",
             "vacancy"],
    "diy": ["diy", "how to", "tutorial", "guide", "instructions", "make your own", "homemade", "step by step"],
    "cheap": ["cheap", "cheapest", "budget", "clearance", "bargain", "low cost"],
    "informational": ["what is", "define", "meaning", "definition", "wiki", "wikipedia", "examples", "vs",
                      "versus", "difference between"],
    "competitors": ["amazon", "ebay", "walmart", "alibaba", "craigslist", "etsy"],
    "reviews": ["review", "reviews", "rating", "ratings", "complaint", "complaints", "scam", "legit", "reddit",
                "trustpilot"],
    "support": ["support", "customer service", "contact", "phone number", "troubleshoot"],
    "login": ["login", "log in", "sign in", "signin", "password", "forgot password", "reset password"],
    "refund": ["refund", "return", "cancel", "cancellation", "money back", "chargeback"],
    "legal": ["lawsuit", "sue", "legal", "attorney", "lawyer", "court", "class action"],
    "education": ["course", "class", "training", "certification", "degree", "learn", "school", "university",
                  "pdf", "ebook"],
    "location": ["near me", "nearby", "in my area", "closest", "directions to"],
    "wholesale": ["wholesale", "bulk", "resale", "reseller", "distributor", "supplier", "manufacturer"],
}
HIGH_CLICKS_NO_CONVERSIONS = 10
HIGH_SPEND_NO_CONVERSIONS = 20
BLOCKED_SPEND_SAVINGS = 0.9

_PATTERN_RES = {
    category: [(p, re.compile(rf"\b{re.escape(p)}\b")) for p in patterns]
    for category, patterns in SEARCH_TERM_NEGATIVE_PATTERNS.items()
}


def _matching_pattern(term: str):
    lower = term.lower()
    for category, patterns in _PATTERN_RES.items():
        for pattern, regex in patterns:
            if regex.search(lower):
                return category, pattern
    return None, None


def suggest_search_term_negatives(search_terms: List[Dict]) -> Dict:
    """
    Negative keyword suggestions from search term performance.

    Only terms with spend and no conversions are considered. A term matching a
    known pattern (whole words) is suggested with 0.95 confidence; otherwise
    many clicks (0.7) or high spend (0.65) without conversions flags it.

    search_terms: [{search_term, cost, conversions, clicks, impressions,
                    campaign_id?, ad_group_id?}]
    """
    wasters = [t for t in search_terms if (t.get("cost") or 0) > 0 and not t.get("conversions")]
    suggestions = []
    for term in wasters:
        text = term.get("search_term") or ""
        category, pattern = _matching_pattern(text)
        if category:
            reason, confidence = f'Contains "{pattern}" - likely {category} intent', 0.95
        elif (term.get("clicks") or 0) > HIGH_CLICKS_NO_CONVERSIONS:
            category, reason, confidence = "low_intent", "High clicks but zero conversions - poor intent match", 0.7
        elif term["cost"] > HIGH_SPEND_NO_CONVERSIONS:
            category, reason, confidence = "expensive_waster", "High spend with no conversions", 0.65
        else:
            continue
        suggestions.append({
            "search_term": text,
            "category": category,
            "reason": reason,
            "confidence": confidence,
            "similar_to": pattern,
            "cost": term["cost"],
            "potential_savings": round(term["cost"] * BLOCKED_SPEND_SAVINGS, 2),
            "campaign_id": term.get("campaign_id"),
            "ad_group_id": term.get("ad_group_id"),
        })

    suggestions.sort(key=lambda s: (-s["confidence"], -s["cost"]))
    by_category: Dict[str, int] = {}
    for s in suggestions:
        by_category[s["category"]] = by_category.get(s["category"], 0) + 1
    return {
        "suggestions": suggestions,
        "summary": {
            "analyzed": len(search_terms),
            "wasters_found": len(wasters),
            "suggestions": len(suggestions),
            "potential_savings": round(sum(s["potential_savings"] for s in suggestions), 2),
            "by_category": by_category,
        },
    }


CAPABILITIES = {
    "name": "Keyword Factory",
    "description": "Generate keyword variations, synonyms, and match type suggestions with optional real-world metrics",
    "capabilities": [
        "Plural/singular variations",
        "Synonym expansion",
        "Modifier additions (buy, best, cheap, etc.)",
        "Long-tail keyword generation",
        "Match type suggestions",
        "Intent classification",
        "Keyword clustering",
        "Negative keyword suggestions",
        "Real metrics enrichment (search volume, CPC, competition)",
        "Opportunity score calculation",
        "Smart caching with dynamic TTL",
        "Multi-provider support (Google Ads, Moz, DataForSEO)",
    ],
    "limits": {
        "max_seed_keywords": MAX_SEEDS,
        "max_output_per_seed": 50,
        "max_keywords_to_enrich": 50,
    },
    "enrichment_providers": [
        {"name": "Google Ads Keyword Planner", "id": "google_ads",
         "metrics": ["search_volume", "cpc", "competition"], "cost": "Free with active campaigns"},
        {"name": "Moz", "id": "moz",
         "metrics": ["difficulty", "organic_ctr", "priority"], "cost": "1 credit per keyword"},
        {"name": "DataForSEO", "id": "dataforseo",
         "metrics": ["search_volume", "cpc", "competition"], "cost": "~$0.002 per keyword"},
    ],
}
