"""
Guardrail tests.

Guards against:
1. Pausing the last active campaign (directly, in bulk, or via queued pauses)
2. Zero budgets slipping through instead of a pause
3. Large budget swings applied without a warning
4. Per-user settings leaking between users
"""
from adpilot.services.auth_service import create_user
from adpilot.services.guardrails import (
    DEFAULT_GUARDRAIL_SETTINGS,
    check_action_guardrails,
    check_budget_guardrails,
    check_bulk_action_guardrails,
    check_pause_guardrails,
    get_guardrail_settings,
    save_guardrail_settings,
)

CAMPAIGNS = [
    {"id": "1", "status": "ENABLED"},
    {"id": "2", "status": "ENABLED"},
    {"id": "3", "status": "PAUSED"},
]


# ---------------------------------------------------------------------------
# Pausing
# ---------------------------------------------------------------------------

def test_pausing_one_of_two_active_is_allowed():
    result = check_pause_guardrails([{"id": "1"}], CAMPAIGNS)
    assert result == {"allowed": True, "risk_level": "low", "warnings": [], "errors": []}


def test_pausing_last_active_campaign_is_blocked():
    result = check_pause_guardrails([{"id": "1"}], [{"id": "1", "status": "ENABLED"}, CAMPAIGNS[2]])
    assert result["allowed"] is False
    assert result["risk_level"] == "high"
    assert result["errors"] == ["Cannot pause all active campaigns. At least one campaign must remain active."]


def test_pending_pauses_count_against_remaining():
    pending = [{"action_type": "pause_campaign", "entity_id": "2"}]
    action = {"action_type": "pause_campaign", "entity_id": "1"}
    assert check_action_guardrails(action, CAMPAIGNS, None, pending)["allowed"] is False

    rejected = [{"action_type": "pause_campaign", "entity_id": "2", "status": "rejected"}]
    assert check_action_guardrails(action, CAMPAIGNS, None, rejected)["allowed"] is True


def test_allow_pause_all_downgrades_to_warning():
    result = check_pause_guardrails([{"id": "1"}], [{"id": "1", "status": "ENABLED"}], {"allow_pause_all": True})
    assert result["allowed"] is True
    assert result["risk_level"] == "high"
    assert result["warnings"] == ["Warning: This will pause your last active campaign."]


def test_high_performer_pause_warns():
    result = check_pause_guardrails([{"id": "1", "ai_score": 85}], CAMPAIGNS)
    assert result["allowed"] is True
    assert result["risk_level"] == "medium"
    assert "high AI Score (85)" in result["warnings"][0]


def test_bulk_pause_of_every_active_campaign_is_blocked():
    result = check_pause_guardrails([{"id": "1"}, {"id": "2"}], CAMPAIGNS)
    assert result["allowed"] is False
    assert result["errors"] == ["Cannot pause all 2 active campaigns. At least one must remain active."]


def test_bulk_mixed_actions_collect_warnings():
    actions = [
        {"action_type": "pause_campaign", "entity_id": "1", "ai_score": 90},
        {"action_type": "update_budget", "entity_id": "2", "current_value": 100, "new_value": 30},
    ]
    result = check_bulk_action_guardrails(actions, CAMPAIGNS)
    assert result["allowed"] is True
    assert result["risk_level"] == "high"
    assert "1 high-performing campaign(s) will be paused." in result["warnings"]
    assert "Large budget decrease: 70% change detected." in result["warnings"]


def test_disabled_guardrails_allow_everything():
    result = check_pause_guardrails([{"id": "1"}, {"id": "2"}], CAMPAIGNS, {"enabled": False})
    assert result["allowed"] is True


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

def test_zero_budget_is_blocked():
    result = check_budget_guardrails({"id": "1", "budget": 50}, 0)
    assert result["allowed"] is False
    assert result["errors"] == ["Cannot set budget to $0. Pause the campaign instead."]
    assert check_budget_guardrails({"id": "1", "budget": 50}, 0, {"allow_zero_budget": True})["allowed"]


def test_large_budget_change_warns():
    result = check_budget_guardrails({"id": "1", "budget": 100}, 160)
    assert result["allowed"] is True
    assert result["risk_level"] == "high"
    assert result["warnings"] == ["Large budget increase: 60% change detected."]


def test_medium_budget_change_raises_risk_only():
    result = check_budget_guardrails({"id": "1", "budget": 100}, 130)
    assert result["risk_level"] == "medium"
    assert result["warnings"] == []


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def test_settings_default_then_partial_update(db, user):
    assert get_guardrail_settings(db, user.id) == DEFAULT_GUARDRAIL_SETTINGS

    saved = save_guardrail_settings(db, user.id, {"max_budget_change_percent": 30, "unknown": 1})
    assert saved["max_budget_change_percent"] == 30
    assert saved["allow_pause_all"] is False

    other = create_user(db, "other@example.com", "pw-123456", "Other")
    assert get_guardrail_settings(db, other.id)["max_budget_change_percent"] == 50.0
