from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping

from auditking.app.checklist_models import (
    ChecklistTemplate,
    TemplateItem,
    clean_text,
    new_record_id,
    normalize_question_kind,
    parse_option_list,
    today_iso,
)
from auditking.app.checklist_parser import parse_checklist_text
from auditking.app.errors import ValidationError


OPTION_PRESETS: dict[str, tuple[str, ...]] = {
    "YNA": ("Yes", "No", "N/A"),
    "GFP": ("Good", "Fair", "Poor"),
}
_EDITABLE_ITEM_FIELDS = {"kind", "label", "required", "options"}


def new_template(
    name: str = "New Template",
    *,
    site: str = "",
    items: list[TemplateItem] | None = None,
    signature_required: bool = False,
) -> ChecklistTemplate:
    return ChecklistTemplate(
        template_id=new_record_id(),
        name=clean_text(name),
        site=clean_text(site),
        signature_required=bool(signature_required),
        items=list(items) if items is not None else [
            TemplateItem(item_id="q1", kind="yesno", label="PPE worn?", required=True),
        ],
    )


def template_from_text(name: str, raw_text: str, *, site: str = "") -> ChecklistTemplate:
    return new_template(name, site=site, items=parse_checklist_text(raw_text))


def add_item(template: ChecklistTemplate, kind: str, *, label: str = "New question") -> ChecklistTemplate:
    normalized_kind = normalize_question_kind(kind)
    taken = set(template.item_ids())
    counter = len(template.items) + 1
    item_id = f"{normalized_kind}-{counter}"
    while item_id in taken:
        counter += 1
        item_id = f"{normalized_kind}-{counter}"
    item = TemplateItem(item_id=item_id, kind=normalized_kind, label=clean_text(label))
    return replace(template, items=[*template.items, item])


def remove_item(template: ChecklistTemplate, item_id: str) -> ChecklistTemplate:
    return replace(template, items=[item for item in template.items if item.item_id != item_id])


def move_item_up(template: ChecklistTemplate, index: int) -> ChecklistTemplate:
    if index <= 0 or index >= len(template.items):
        return template
    items = list(template.items)
    items[index - 1], items[index] = items[index], items[index - 1]
    return replace(template, items=items)


def update_item(template: ChecklistTemplate, item_id: str, patch: Mapping[str, Any]) -> ChecklistTemplate:
    unknown = set(patch) - _EDITABLE_ITEM_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported question fields: {', '.join(sorted(unknown))}")
    changes: dict[str, Any] = {}
    if "kind" in patch:
        changes["kind"] = normalize_question_kind(patch["kind"])
    if "label" in patch:
        changes["label"] = clean_text(patch["label"])
    if "required" in patch:
        changes["required"] = bool(patch["required"])
    if "options" in patch:
        changes["options"] = parse_option_list(patch["options"])
    return replace(
        template,
        items=[replace(item, **changes) if item.item_id == item_id else item for item in template.items],
    )


def set_item_options(template: ChecklistTemplate, item_id: str, raw_options: str) -> ChecklistTemplate:
    return update_item(template, item_id, {"options": raw_options})


def apply_option_preset(template: ChecklistTemplate, index: int, preset: str) -> ChecklistTemplate:
    options = OPTION_PRESETS.get(clean_text(preset).upper())
    if options is None:
        raise ValidationError(f"Unknown option preset: {preset!r}")
    if not 0 <= index < len(template.items):
        raise IndexError(f"Question index {index} out of range for {len(template.items)} items.")
    items = list(template.items)
    items[index] = replace(items[index], kind="choice", options=list(options))
    return replace(template, items=items)


def finalize_template(template: ChecklistTemplate, *, today: str | None = None) -> ChecklistTemplate:
    """Prepare an edited template for saving: stamp the date, check item ids."""
    if not template.has_unique_item_ids():
        raise ValidationError("Question ids must be unique within a template.")
    return replace(template, name=clean_text(template.name), updated_at=today or today_iso())
