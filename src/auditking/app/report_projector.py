from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from auditking.app.checklist_models import ChecklistTemplate, InspectionItem, InspectionRecord


MISSING_VALUE_LABEL = "—"
MISSING_SCORE_LABEL = "--"


@dataclass(frozen=True, slots=True)
class ReportHeader:
    template_name: str
    site: str
    started_at: str
    submitted_at: str
    score: str
    score_band: str
    inspector: str
    description: str = ""
    instructions: str = ""
    logo_url: str = ""
    signature: str = ""


@dataclass(frozen=True, slots=True)
class ReportEntry:
    position: int
    label: str
    kind: str
    value: str
    badge: str | None
    media: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ReportDocument:
    inspection_id: str
    header: ReportHeader
    entries: tuple[ReportEntry, ...]


def project_report(
    inspection: InspectionRecord,
    template: ChecklistTemplate | None = None,
) -> ReportDocument:
    """Build the printable view of ``inspection``.

    Header fields come from the inspection's own denormalized copy; the
    template, when still available, only contributes presentation metadata.
    """
    header = ReportHeader(
        template_name=inspection.template_name or (template.name if template is not None else ""),
        site=inspection.site or MISSING_VALUE_LABEL,
        started_at=format_timestamp(inspection.started_at),
        submitted_at=format_timestamp(inspection.submitted_at),
        score=format_score(inspection.score),
        score_band=score_band(inspection.score),
        inspector=inspection.owner_name,
        description=template.description if template is not None else "",
        instructions=template.instructions if template is not None else "",
        logo_url=template.logo_url if template is not None else "",
        signature=inspection.signature,
    )
    entries = tuple(
        ReportEntry(
            position=position,
            label=item.label,
            kind=item.kind,
            value=render_value(item),
            badge=pass_badge(item),
            media=tuple(item.media),
        )
        for position, item in enumerate(inspection.items, start=1)
    )
    return ReportDocument(inspection_id=inspection.inspection_id, header=header, entries=entries)


def format_timestamp(value: str) -> str:
    """``2026-10-18T09:30:12+00:00`` -> ``2026-10-18 09:30``."""
    return (value or "").replace("T", " ")[:16]


def format_score(score: int | None) -> str:
    if score is None:
        return f"{MISSING_SCORE_LABEL}%"
    return f"{score}%"


def score_band(score: int | None) -> str:
    if score is not None and score >= 90:
        return "green"
    if score is not None and score >= 70:
        return "amber"
    return "red"


def pass_badge(item: InspectionItem) -> str | None:
    if item.kind != "yesno" or item.passed is None:
        return None
    return "Pass" if item.passed else "Fail"


def render_value(item: InspectionItem) -> str:
    value = item.value
    if item.kind == "photo":
        count = len(item.media)
        if not count:
            return MISSING_VALUE_LABEL
        return f"{count} photo" if count == 1 else f"{count} photos"
    if item.kind == "yesno":
        if item.passed is None:
            return MISSING_VALUE_LABEL
        return "Yes" if item.passed else "No"
    if value is None:
        return MISSING_VALUE_LABEL
    if isinstance(value, (list, tuple)):
        rendered = ", ".join(_render_scalar(entry) for entry in value if entry not in (None, ""))
        return rendered or MISSING_VALUE_LABEL
    rendered = _render_scalar(value)
    return rendered or MISSING_VALUE_LABEL


def _render_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
