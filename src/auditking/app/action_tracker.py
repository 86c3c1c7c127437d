from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping

from auditking.app.checklist_models import (
    ACTION_PRIORITIES,
    ACTION_STATUSES,
    ActionRecord,
    AuditDataBundle,
    UserRecord,
    clean_text,
    new_record_id,
    utc_now_iso,
)
from auditking.app.errors import AuthorizationError, ValidationError


MISSING_REFERENCE_LABEL = "—"
_PATCHABLE_FIELDS = {
    "title",
    "inspection_id",
    "item_id",
    "priority",
    "status",
    "due_date",
    "assignee",
}


def create_action(
    bundle: AuditDataBundle,
    title: str,
    priority: str,
    acting_user: UserRecord,
    *,
    inspection_id: str = "",
    item_id: str = "",
    due_date: str = "",
    assignee: str = "",
) -> tuple[AuditDataBundle, ActionRecord]:
    normalized_title = clean_text(title)
    if not normalized_title:
        raise ValidationError("Action title is required.")
    action = ActionRecord(
        action_id=new_record_id(),
        title=normalized_title,
        inspection_id=clean_text(inspection_id),
        item_id=clean_text(item_id),
        priority=_require_choice("priority", priority, ACTION_PRIORITIES),
        status="open",
        due_date=clean_text(due_date),
        assignee=clean_text(assignee),
        created_at=utc_now_iso(),
        owner_id=acting_user.user_id,
    )
    return replace(bundle, actions=[action, *bundle.actions]), action


def update_action(bundle: AuditDataBundle, action_id: str, patch: Mapping[str, Any]) -> AuditDataBundle:
    """Merge ``patch`` into the matching action; unknown ids leave the bundle as is."""
    unknown = set(patch) - _PATCHABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported action fields: {', '.join(sorted(unknown))}")
    if bundle.find_action(action_id) is None:
        return bundle

    changes: dict[str, str] = {}
    for key, raw in patch.items():
        if key == "priority":
            changes[key] = _require_choice("priority", raw, ACTION_PRIORITIES)
        elif key == "status":
            changes[key] = _require_choice("status", raw, ACTION_STATUSES)
        else:
            changes[key] = clean_text(raw)
    if "title" in changes and not changes["title"]:
        raise ValidationError("Action title is required.")

    return replace(
        bundle,
        actions=[
            replace(action, **changes) if action.action_id == action_id else action
            for action in bundle.actions
        ],
    )


def delete_action(bundle: AuditDataBundle, action_id: str, acting_user: UserRecord) -> AuditDataBundle:
    if not acting_user.is_admin:
        raise AuthorizationError("Only admins can delete actions.")
    return replace(bundle, actions=[action for action in bundle.actions if action.action_id != action_id])


def linked_inspection_label(bundle: AuditDataBundle, action: ActionRecord) -> str:
    if not action.inspection_id:
        return MISSING_REFERENCE_LABEL
    inspection = bundle.find_inspection(action.inspection_id)
    if inspection is None:
        return MISSING_REFERENCE_LABEL
    return inspection.template_name or MISSING_REFERENCE_LABEL


def linked_item_label(bundle: AuditDataBundle, action: ActionRecord) -> str:
    inspection = bundle.find_inspection(action.inspection_id) if action.inspection_id else None
    if inspection is None or not action.item_id:
        return MISSING_REFERENCE_LABEL
    for item in inspection.items:
        if item.item_id == action.item_id:
            return item.label or MISSING_REFERENCE_LABEL
    return MISSING_REFERENCE_LABEL


def _require_choice(field_name: str, value: Any, choices: tuple[str, ...]) -> str:
    normalized = clean_text(value).replace("-", "_").replace(" ", "_").casefold()
    if normalized not in choices:
        raise ValidationError(f"Action {field_name} must be one of: {', '.join(choices)}.")
    return normalized
