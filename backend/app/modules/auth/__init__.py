# Authentication and plan entitlements

from app.modules.auth.dependencies import (
    get_current_user,
    get_optional_current_user,
    get_current_entrepreneur,
    get_current_investor,
    get_token_from_request,
    set_auth_cookie,
    clear_auth_cookie,
)

from app.modules.auth.access_control import (
    PLAN_RESTRICTIONS,
    PlanRestrictions,
    PitchLimitCheck,
    get_restrictions_for_plan,
    check_pitch_limit,
    has_active_subscription,
    require_pitch_slot,
    require_document_access,
    filter_pitches_by_subscription,
    filter_investors_by_subscription,
)

__all__ = [
    # User authentication
    "get_current_user",
    "get_optional_current_user",
    "get_current_entrepreneur",
    "get_current_investor",
    "get_token_from_request",
    "set_auth_cookie",
    "clear_auth_cookie",
    # Plan entitlements
    "PLAN_RESTRICTIONS",
    "PlanRestrictions",
    "PitchLimitCheck",
    "get_restrictions_for_plan",
    "check_pitch_limit",
    "has_active_subscription",
    "require_pitch_slot",
    "require_document_access",
    "filter_pitches_by_subscription",
    "filter_investors_by_subscription",
]
