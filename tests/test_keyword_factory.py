"""
Keyword Factory tests.

Guards against:
1. Duplicate keywords when a variation of one seed equals another seed's output
2. More than 20 seeds being expanded
3. Provider suggestions replacing locally generated keywords
4. Substrings such as "freelancers" being flagged as "free" search terms
"""
from adpilot.services.keyword_factory import (
    MAX_SEEDS,
    add_modifiers,
    apply_enrichment,
    cluster_keywords,
    estimate_intent,
    generate_keywords,
    generate_long_tail,
    generate_synonyms,
    generate_variations,
    geo_code_for,
    prioritize_for_enrichment,
    suggest_match_type,
    suggest_negatives,
    suggest_search_term_negatives,
)


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

def test_variations_toggle_plurals_and_swap_pairs():
    assert generate_variations("Running Shoe") == ["runnings shoe", "running shoes", "shoe running"]
    assert "seo agency best" in generate_variations("best seo agency")


def test_synonyms_replace_known_words():
    synonyms = generate_synonyms("cheap software")
    assert "affordable software" in synonyms
    assert "cheap platform" in synonyms
    assert generate_synonyms("running shoes") == []


def test_modifiers_and_long_tail():
    modifiers = add_modifiers("Shoes")
    assert [m["keyword"] for m in modifiers][:2] == ["buy shoes", "purchase shoes"]
    assert modifiers[-1]["keyword"] == "shoes near me"
    assert all(m["suggested_match_type"] == "PHRASE" for m in modifiers)

    long_tail = {k["keyword"]: k for k in generate_long_tail("shoes")}
    assert long_tail["shoes free trial"]["suggested_match_type"] == "PHRASE"
    assert long_tail["shoes reviews"]["suggested_match_type"] == "BROAD"


def test_negative_suggestions():
    negatives = suggest_negatives("shoes")
    assert len(negatives) == 19
    assert all(n["negative_candidate"] for n in negatives)
    jobs = next(n for n in negatives if n["keyword"] == "jobs")
    assert jobs["negative_reason"] == "Job seeker traffic - unlikely to convert"


def test_match_type_and_intent():
    assert suggest_match_type("buy shoes") == "EXACT"
    assert suggest_match_type("shoes") == "EXACT"
    assert suggest_match_type("running shoes") == "PHRASE"
    assert suggest_match_type("cheap running shoes online") == "BROAD"

    assert estimate_intent("buy running shoes") == "transactional"
    assert estimate_intent("how to run") == "informational"
    assert estimate_intent("running shoes review") == "commercial"
    assert estimate_intent("account login") == "navigational"
    assert estimate_intent("running shoes") == "commercial"


def test_clusters_group_by_first_significant_word():
    clusters = cluster_keywords([
        {"keyword": "best running shoes", "estimated_intent": "commercial"},
        {"keyword": "running gear", "estimated_intent": "commercial"},
        {"keyword": "top", "estimated_intent": "commercial"},
    ])
    assert [(c["theme"], len(c["keywords"])) for c in clusters] == [("running", 2), ("commercial", 1)]
    assert clusters[0]["suggested_ad_group"] == "Running Keywords"


def test_geo_codes():
    assert geo_code_for("gb") == "2826"
    assert geo_code_for(None) == "2840"
    assert geo_code_for("ZZ") == "2840"


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def test_generate_keywords_dedupes_and_counts():
    result = generate_keywords(["Running Shoes", "  ", "running shoe"])
    words = [k["keyword"] for k in result["keywords"]]
    assert len(words) == len(set(words))
    assert result["keywords"][0] == {
        "keyword": "running shoes",
        "type": "seed",
        "source": "user_input",
        "suggested_match_type": "PHRASE",
        "estimated_intent": "commercial",
    }
    # "running shoe" was first produced as a variation of the first seed
    assert next(k for k in result["keywords"] if k["keyword"] == "running shoe")["type"] == "variation"
    assert len(result["negative_keywords"]) == 19
    assert result["stats"]["total_generated"] == len(words)
    assert result["stats"]["by_type"]["seed"] == 1
    assert result["stats"]["negatives_suggested"] == 19
    assert result["stats"]["clusters"] == len(result["clusters"])


def test_generate_keywords_respects_options_and_seed_limit():
    result = generate_keywords(
        [f"keyword{i}" for i in range(25)],
        {"generate_variations": False, "generate_synonyms": False, "include_negatives": False},
    )
    assert result["stats"]["by_type"]["seed"] == MAX_SEEDS
    assert result["stats"]["by_type"]["variation"] == 0
    assert result["negative_keywords"] == []


# ---------------------------------------------------------------------------
# Enrichment merge
# ---------------------------------------------------------------------------

def test_prioritize_seeds_then_intent():
    keywords = [
        {"keyword": "a", "type": "modifier", "estimated_intent": "commercial"},
        {"keyword": "b", "type": "seed", "estimated_intent": "informational"},
        {"keyword": "c", "type": "long_tail", "estimated_intent": "transactional"},
        {"keyword": "jobs", "type": "variation", "estimated_intent": "informational", "negative_candidate": True},
    ]
    assert prioritize_for_enrichment(keywords, 10) == ["b", "c", "a"]
    assert prioritize_for_enrichment(keywords, 1) == ["b"]


def test_apply_enrichment_merges_adds_filters_and_sorts():
    keywords = [
        {"keyword": "running shoes", "type": "seed", "estimated_intent": "commercial"},
        {"keyword": "trail shoes", "type": "variation", "estimated_intent": "commercial"},
        {"keyword": "shoes near me", "type": "modifier", "estimated_intent": "transactional"},
    ]
    enriched = {
        "running shoes": {"metrics": {"search_volume": 5000}, "opportunity_score": 50},
        "trail shoes": {"metrics": {"search_volume": 40}, "opportunity_score": 90},
        "best running shoes": {"metrics": {"search_volume": 900}, "opportunity_score": 70},
    }
    merged = apply_enrichment(keywords, enriched, min_search_volume=100)

    assert [k["keyword"] for k in merged] == ["best running shoes", "running shoes", "shoes near me"]
    assert merged[0]["source"] == "google_ads_suggestion"
    assert merged[1]["metrics"] == {"search_volume": 5000}
    assert "metrics" not in merged[2]


# ---------------------------------------------------------------------------
# Search term negatives
# ---------------------------------------------------------------------------

def test_search_term_negatives_rank_patterns_before_thresholds():
    result = suggest_search_term_negatives([
        {"search_term": "running shoes jobs", "cost": 4.0, "clicks": 2, "conversions": 0},
        {"search_term": "cheap running shoes", "cost": 9.0, "clicks": 3, "conversions": 0},
        {"search_term": "running shoes", "cost": 80.0, "clicks": 40, "conversions": 0},
        {"search_term": "trail shoes", "cost": 25.0, "clicks": 5, "conversions": 0},
        {"search_term": "shoes for freelancers", "cost": 3.0, "clicks": 1, "conversions": 0},
        {"search_term": "free shoes", "cost": 0, "clicks": 0, "conversions": 0},
        {"search_term": "buy cheap shoes", "cost": 50.0, "clicks": 20, "conversions": 1},
    ])

    assert [(s["search_term"], s["category"], s["confidence"]) for s in result["suggestions"]] == [
        ("cheap running shoes", "cheap", 0.95),
        ("running shoes jobs", "jobs", 0.95),
        ("running shoes", "low_intent", 0.7),
        ("trail shoes", "expensive_waster", 0.65),
    ]
    assert result["suggestions"][0]["potential_savings"] == 8.1
    assert result["summary"]["analyzed"] == 7
    assert result["summary"]["wasters_found"] == 5
    assert result["summary"]["by_category"] == {"cheap": 1, "jobs": 1, "low_intent": 1, "expensive_waster": 1}
