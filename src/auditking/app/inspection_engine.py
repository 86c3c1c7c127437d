from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any, Mapping, Sequence

from auditking.app.checklist_models import (
    ChecklistTemplate,
    InspectionItem,
    InspectionRecord,
    UserRecord,
    clean_text,
    new_record_id,
    utc_now_iso,
)
from auditking.app.errors import ValidationError


YESNO_DEFAULT_PASS = "pass"
YESNO_DEFAULT_FAIL = "fail"
YESNO_DEFAULT_UNANSWERED = "unanswered"
YESNO_DEFAULTS: tuple[str, ...] = (
    YESNO_DEFAULT_PASS,
    YESNO_DEFAULT_FAIL,
    YESNO_DEFAULT_UNANSWERED,
)
_ANSWER_FIELDS = {"value", "passed", "media"}


def normalize_yesno_default(value: Any) -> str:
    normalized = clean_text(value).casefold()
    if normalized in YESNO_DEFAULTS:
        return normalized
    return YESNO_DEFAULT_PASS


def instantiate(
    template: ChecklistTemplate,
    *,
    yesno_default: str = YESNO_DEFAULT_PASS,
    started_at: str | None = None,
) -> InspectionRecord:
    """Start a draft run of ``template``.

    Every template question is copied into a fresh answer slot, in order.
    Yes/no questions start as a pass unless ``yesno_default`` says otherwise;
    the operator has to mark failures explicitly.
    """
    policy = normalize_yesno_default(yesno_default)
    if policy == YESNO_DEFAULT_PASS:
        check_default: bool | None = True
    elif policy == YESNO_DEFAULT_FAIL:
        check_default = False
    else:
        check_default = None

    items: list[InspectionItem] = []
    for question in template.items:
        is_check = question.kind == "yesno"
        items.append(
            InspectionItem(
                item_id=new_record_id(),
                question_id=question.item_id,
                kind=question.kind,
                label=question.label,
                required=bool(question.required),
                value=check_default if is_check else None,
                passed=check_default if is_check else None,
                media=[],
            )
        )
    return InspectionRecord(
        inspection_id=new_record_id(),
        template_id=template.template_id,
        template_name=template.name,
        site=template.site,
        status="in_progress",
        started_at=started_at or utc_now_iso(),
        items=items,
    )


def record_answer(draft: InspectionRecord, index: int, patch: Mapping[str, Any]) -> InspectionRecord:
    """Return a copy of ``draft`` with ``patch`` merged into the answer at ``index``.

    ``patch`` may carry ``value``, ``passed`` (or its stored name ``pass``)
    and ``media``; ``date`` values are stored as ISO strings. An index
    outside the draft is a caller bug and raises ``IndexError``.
    """
    _require_draft(draft)
    _check_index(draft, index)
    changes = dict(patch)
    if "pass" in changes:
        changes["passed"] = changes.pop("pass")
    unknown = set(changes) - _ANSWER_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported answer fields: {', '.join(sorted(unknown))}")
    if "value" in changes:
        changes["value"] = _stored_value(changes["value"])
    if "media" in changes:
        changes["media"] = list(changes["media"] or [])
    items = list(draft.items)
    items[index] = replace(items[index], **changes)
    return replace(draft, items=items)


def mark_check(draft: InspectionRecord, index: int, passed: bool) -> InspectionRecord:
    return record_answer(draft, index, {"passed": bool(passed), "value": bool(passed)})


def attach_media(draft: InspectionRecord, index: int, blob: str) -> InspectionRecord:
    if not isinstance(blob, str) or not blob:
        raise ValidationError("Media reference must be a non-empty string.")
    _require_draft(draft)
    _check_index(draft, index)
    return record_answer(draft, index, {"media": [*draft.items[index].media, blob]})


def set_signature(draft: InspectionRecord, signature: str | None) -> InspectionRecord:
    _require_draft(draft)
    return replace(draft, signature=signature or "")


def compute_score(draft: InspectionRecord | Sequence[InspectionItem]) -> int:
    items = draft.items if isinstance(draft, InspectionRecord) else draft
    checks = [item for item in items if item.kind == "yesno"]
    if not checks:
        return 100
    passed = sum(1 for item in checks if item.passed is True)
    # Integer form of round-half-up(100 * passed / len(checks)).
    return (200 * passed + len(checks)) // (2 * len(checks))


def validate(draft: InspectionRecord) -> list[str]:
    """Return the question ids of required items that have no answer yet."""
    return [
        item.question_id
        for item in draft.items
        if item.required and not is_answered(item)
    ]


def is_answered(item: InspectionItem) -> bool:
    if item.kind == "yesno":
        return item.passed is not None
    if item.kind == "photo":
        return bool(item.media)
    value = item.value
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return bool(value)
    return True


def signature_missing(template: ChecklistTemplate, draft: InspectionRecord) -> bool:
    return bool(template.signature_required) and not draft.signature


def submit(
    draft: InspectionRecord,
    acting_user: UserRecord,
    *,
    submitted_at: str | None = None,
) -> InspectionRecord:
    """Freeze ``draft`` into a submitted inspection owned by ``acting_user``.

    Callers must check ``signature_missing`` (and ``validate`` if they want
    completeness) first; submit itself does not block on either.
    """
    _require_draft(draft)
    return replace(
        draft,
        status="submitted",
        submitted_at=submitted_at or utc_now_iso(),
        score=compute_score(draft),
        owner_id=acting_user.user_id,
        owner_name=acting_user.display_name,
        items=list(draft.items),
    )


def _stored_value(value: Any) -> Any:
    # Dates and datetimes are kept as ISO text so the snapshot stays plain JSON.
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_stored_value(entry) for entry in value]
    return value


def _require_draft(draft: InspectionRecord) -> None:
    if draft.is_submitted:
        raise ValidationError("Inspection has already been submitted.")


def _check_index(draft: InspectionRecord, index: int) -> None:
    if not 0 <= index < len(draft.items):
        raise IndexError(f"Answer index {index} out of range for {len(draft.items)} items.")
