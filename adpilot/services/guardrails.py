"""
Guardrails

Safety checks run before a pause or budget change reaches Google Ads, from
the dashboard or from an automated rule. Each check answers with
{allowed, risk_level, warnings, errors}; errors block, warnings need
confirmation.
"""
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from adpilot.models.automated_rule import GuardrailSetting
from adpilot.utils.helpers import round_half_up
from adpilot.utils.logger import log

DEFAULT_GUARDRAIL_SETTINGS = {
    "enabled": True,
    "allow_pause_all": False,
    "allow_zero_budget": False,
    "max_budget_change_percent": 50.0,
    "warn_on_high_performer_pause": True,
    "high_performer_threshold": 80.0,
}

MEDIUM_BUDGET_CHANGE_PERCENT = 25
RISK_ORDER = {"low": 0, "medium": 1, "high": 2}


def _result(allowed: bool = True, risk_level: str = "low", warnings=None, errors=None) -> Dict:
    return {
        "allowed": allowed,
        "risk_level": risk_level,
        "warnings": list(warnings or []),
        "errors": list(errors or []),
    }


def _raise_risk(current: str, level: str) -> str:
    return level if RISK_ORDER[level] > RISK_ORDER[current] else current


def _dedupe(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def _merge_settings(settings: Optional[Dict]) -> Dict:
    return {**DEFAULT_GUARDRAIL_SETTINGS, **(settings or {})}


def check_action_guardrails(action: Dict, campaigns: List[Dict], settings: Optional[Dict] = None,
                            pending_actions: Optional[List[Dict]] = None) -> Dict:
    """
    Check one queued action.

    Args:
        action: {action_type: pause_campaign|update_budget, entity_id, current_value?, new_value?, ai_score?}
        campaigns: all campaigns of the account with id and status
        settings: guardrail settings, defaults filled in
        pending_actions: actions already queued (pending pauses count as paused)
    """
    settings = _merge_settings(settings)
    if not settings["enabled"]:
        return _result()

    warnings, errors = [], []
    risk = "low"
    action_type = action.get("action_type")

    if action_type == "pause_campaign":
        active = [c for c in campaigns if c.get("status") == "ENABLED"]
        already_pausing = {
            str(a.get("entity_id")) for a in pending_actions or []
            if a.get("action_type") == "pause_campaign" and a.get("status") != "rejected"
        }
        remaining = [
            c for c in active
            if str(c.get("id")) != str(action.get("entity_id")) and str(c.get("id")) not in already_pausing
        ]

        if not remaining and active:
            if not settings["allow_pause_all"]:
                errors.append("Cannot pause all active campaigns. At least one campaign must remain active.")
                return _result(False, "high", warnings, errors)
            warnings.append("Warning: This will pause your last active campaign.")
            risk = "high"

        ai_score = action.get("ai_score")
        if settings["warn_on_high_performer_pause"] and ai_score is not None \
                and ai_score >= settings["high_performer_threshold"]:
            warnings.append(
                f"Warning: This campaign has a high AI Score ({ai_score:g}). Pausing may impact performance."
            )
            risk = _raise_risk(risk, "medium")

    elif action_type == "update_budget":
        current = float(action.get("current_value") or 0)
        new = float(action.get("new_value") or 0)

        if new == 0 and not settings["allow_zero_budget"]:
            errors.append("Cannot set budget to $0. Pause the campaign instead.")
            return _result(False, "high", warnings, errors)

        if current > 0:
            change_percent = abs((new - current) / current) * 100
            if change_percent >= settings["max_budget_change_percent"]:
                direction = "increase" if new > current else "decrease"
                warnings.append(
                    f"Large budget {direction}: {round_half_up(change_percent)}% change detected."
                )
                risk = "high"
            elif change_percent >= MEDIUM_BUDGET_CHANGE_PERCENT:
                risk = _raise_risk(risk, "medium")

    return _result(not errors, risk, warnings, errors)


def check_pause_guardrails(targets: List[Dict], all_campaigns: List[Dict],
                           settings: Optional[Dict] = None) -> Dict:
    """Pausing one or more campaigns ({id, ai_score?} each)"""
    actions = [
        {"action_type": "pause_campaign", "entity_id": t.get("id"), "ai_score": t.get("ai_score")}
        for t in targets
    ]
    if len(actions) == 1:
        return check_action_guardrails(actions[0], all_campaigns, settings)
    return check_bulk_action_guardrails(actions, all_campaigns, settings)


def check_budget_guardrails(campaign: Dict, new_budget: float, settings: Optional[Dict] = None) -> Dict:
    """Changing a campaign's daily budget (campaign carries its current budget)"""
    action = {
        "action_type": "update_budget",
        "entity_id": campaign.get("id"),
        "current_value": campaign.get("budget"),
        "new_value": new_budget,
    }
    return check_action_guardrails(action, [campaign], settings)


def check_bulk_action_guardrails(actions: List[Dict], campaigns: List[Dict], settings: Optional[Dict] = None,
                                 pending_actions: Optional[List[Dict]] = None) -> Dict:
    settings = _merge_settings(settings)
    if not settings["enabled"]:
        return _result()

    warnings, errors = [], []
    risk = "low"

    pauses = [a for a in actions if a.get("action_type") == "pause_campaign"]
    if pauses:
        active = [c for c in campaigns if c.get("status") == "ENABLED"]
        pausing = {str(a.get("entity_id")) for a in pauses}
        pausing |= {
            str(a.get("entity_id")) for a in pending_actions or []
            if a.get("action_type") == "pause_campaign" and a.get("status") != "rejected"
        }
        remaining = [c for c in active if str(c.get("id")) not in pausing]

        if not remaining and active:
            if not settings["allow_pause_all"]:
                errors.append(f"Cannot pause all {len(pauses)} active campaigns. At least one must remain active.")
                return _result(False, "high", warnings, errors)
            warnings.append(f"Warning: This will pause all {len(pauses)} active campaigns.")
            risk = "high"

        if settings["warn_on_high_performer_pause"]:
            high_performers = [
                a for a in pauses
                if a.get("ai_score") is not None and a["ai_score"] >= settings["high_performer_threshold"]
            ]
            if high_performers:
                warnings.append(f"{len(high_performers)} high-performing campaign(s) will be paused.")
                risk = _raise_risk(risk, "medium")

    for action in actions:
        result = check_action_guardrails(action, campaigns, settings, pending_actions)
        if not result["allowed"]:
            errors.extend(result["errors"])
        warnings.extend(result["warnings"])
        risk = _raise_risk(risk, result["risk_level"])

    errors = _dedupe(errors)
    return _result(not errors, risk, _dedupe(warnings), errors)


# ---------------------------------------------------------------------------
# Per-user settings
# ---------------------------------------------------------------------------

def get_guardrail_settings(db: Session, user_id: int) -> Dict:
    row = db.query(GuardrailSetting).filter(GuardrailSetting.user_id == user_id).first()
    if not row:
        return dict(DEFAULT_GUARDRAIL_SETTINGS)
    return {key: getattr(row, key) for key in DEFAULT_GUARDRAIL_SETTINGS}


def save_guardrail_settings(db: Session, user_id: int, updates: Dict) -> Dict:
    """Partial update; unknown keys are ignored"""
    row = db.query(GuardrailSetting).filter(GuardrailSetting.user_id == user_id).first()
    if not row:
        row = GuardrailSetting(user_id=user_id, **DEFAULT_GUARDRAIL_SETTINGS)
        db.add(row)

    for key, value in updates.items():
        if key in DEFAULT_GUARDRAIL_SETTINGS and value is not None:
            setattr(row, key, value)

    db.commit()
    log.info(f"Updated guardrail settings for user {user_id}")
    return get_guardrail_settings(db, user_id)
