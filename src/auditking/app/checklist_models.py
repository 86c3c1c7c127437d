"""Audit records and the snapshot bundle.

Reading and writing both normalize: text fields are stripped, enum-like
fields fall back to their defaults, and ids are taken as given. Ids are
only generated when a record is created (``new_record_id``); rows read
without an id are skipped, except question rows inside a template or
inspection, which keep an empty id.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar
from uuid import uuid4


USER_ROLES: tuple[str, ...] = ("admin", "manager", "inspector")

QUESTION_KINDS: tuple[str, ...] = (
    "yesno",
    "text",
    "photo",
    "number",
    "date",
    "multiple",
    "choice",
)
OPTION_QUESTION_KINDS: tuple[str, ...] = ("multiple", "choice")
_QUESTION_KIND_ALIASES: dict[str, str] = {
    "yes_no": "yesno",
    "yes/no": "yesno",
    "boolean": "yesno",
    "bool": "yesno",
    "free_text": "text",
    "string": "text",
    "image": "photo",
    "numeric": "number",
    "multi": "multiple",
    "multiple_select": "multiple",
    "single_choice": "choice",
    "select": "choice",
}

INSPECTION_STATUSES: tuple[str, ...] = ("in_progress", "submitted")
ACTION_PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
ACTION_STATUSES: tuple[str, ...] = ("open", "in_progress", "resolved", "verified")

SEED_ADMIN_USER_ID = "u1"

_RecordT = TypeVar("_RecordT")


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = clean_text(value).casefold()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off", ""}:
        return False
    return bool(value)


def _as_optional_bool(value: Any) -> bool | None:
    if value is None:
        return None
    return _as_bool(value)


def _as_score(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        parsed = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None
    return min(100, max(0, parsed))


def parse_option_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        candidates = list(value)
    elif isinstance(value, str):
        candidates = value.split(",")
    else:
        return []
    rows: list[str] = []
    for candidate in candidates:
        text = clean_text(candidate)
        if text:
            rows.append(text)
    return rows


def _parse_media(value: Any) -> list[str]:
    # Blob references are opaque; only empties and non-strings are dropped.
    if not isinstance(value, (list, tuple)):
        return []
    return [entry for entry in value if isinstance(entry, str) and entry]


def _record_id(value: Mapping[str, Any], key: str) -> str:
    return clean_text(value.get(key) or value.get("id"))


def new_record_id() -> str:
    return uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def normalize_question_kind(value: Any) -> str:
    raw = clean_text(value).replace("-", "_").replace(" ", "_").casefold()
    normalized = _QUESTION_KIND_ALIASES.get(raw, raw)
    if normalized in QUESTION_KINDS:
        return normalized
    return "text"


def normalize_roles(value: Any) -> list[str]:
    roles: list[str] = []
    for entry in parse_option_list(value):
        role = entry.casefold()
        if role in USER_ROLES and role not in roles:
            roles.append(role)
    return roles


def normalize_inspection_status(value: Any) -> str:
    normalized = clean_text(value).replace("-", "_").replace(" ", "_").casefold()
    if normalized in INSPECTION_STATUSES:
        return normalized
    return "in_progress"


def normalize_action_priority(value: Any, *, default: str = "medium") -> str:
    normalized = clean_text(value).casefold()
    if normalized in ACTION_PRIORITIES:
        return normalized
    return default


def normalize_action_status(value: Any, *, default: str = "open") -> str:
    normalized = clean_text(value).replace("-", "_").replace(" ", "_").casefold()
    if normalized in ACTION_STATUSES:
        return normalized
    return default


@dataclass(slots=True)
class UserRecord:
    user_id: str
    email: str = ""
    name: str = ""
    roles: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role("admin")

    @property
    def can_view_all_inspections(self) -> bool:
        return self.has_role("admin") or self.has_role("manager")

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "UserRecord":
        if not isinstance(value, Mapping):
            return cls(user_id="")
        return cls(
            user_id=_record_id(value, "user_id"),
            email=clean_text(value.get("email")),
            name=clean_text(value.get("name") or value.get("full_name")),
            roles=normalize_roles(value.get("roles")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "user_id": clean_text(self.user_id),
            "email": clean_text(self.email),
            "name": clean_text(self.name),
            "roles": normalize_roles(self.roles),
        }


@dataclass(slots=True)
class TemplateItem:
    item_id: str
    kind: str = "text"
    label: str = ""
    required: bool = False
    options: list[str] = field(default_factory=list)

    @property
    def takes_options(self) -> bool:
        return self.kind in OPTION_QUESTION_KINDS

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "TemplateItem":
        if not isinstance(value, Mapping):
            return cls(item_id="")
        return cls(
            item_id=_record_id(value, "item_id"),
            kind=normalize_question_kind(value.get("kind") or value.get("type")),
            label=clean_text(value.get("label")),
            required=_as_bool(value.get("required")),
            options=parse_option_list(value.get("options")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "item_id": clean_text(self.item_id),
            "kind": normalize_question_kind(self.kind),
            "label": clean_text(self.label),
            "required": bool(self.required),
            "options": parse_option_list(self.options),
        }


@dataclass(slots=True)
class ChecklistTemplate:
    template_id: str
    name: str
    site: str = ""
    description: str = ""
    instructions: str = ""
    logo_url: str = ""
    updated_at: str = ""
    signature_required: bool = False
    items: list[TemplateItem] = field(default_factory=list)

    def item_ids(self) -> list[str]:
        return [item.item_id for item in self.items]

    def has_unique_item_ids(self) -> bool:
        ids = self.item_ids()
        return len(ids) == len(set(ids))

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "ChecklistTemplate":
        if not isinstance(value, Mapping):
            return cls(template_id="", name="")
        return cls(
            template_id=_record_id(value, "template_id"),
            name=clean_text(value.get("name")),
            site=clean_text(value.get("site")),
            description=clean_text(value.get("description")),
            instructions=clean_text(value.get("instructions")),
            logo_url=clean_text(value.get("logo_url") or value.get("logoUrl")),
            updated_at=clean_text(value.get("updated_at") or value.get("updatedAt")),
            signature_required=_as_bool(
                value.get("signature_required", value.get("signatureRequired"))
            ),
            items=_parse_template_items(value.get("items")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "template_id": clean_text(self.template_id),
            "name": clean_text(self.name),
            "site": clean_text(self.site),
            "description": clean_text(self.description),
            "instructions": clean_text(self.instructions),
            "logo_url": clean_text(self.logo_url),
            "updated_at": clean_text(self.updated_at),
            "signature_required": bool(self.signature_required),
            "items": [item.to_mapping() for item in self.items],
        }


@dataclass(slots=True)
class InspectionItem:
    """One answered question.

    ``kind``, ``label`` and ``required`` are copied from the template item when
    the run starts, so later template edits never reach a recorded answer.
    ``passed`` is only meaningful for yes/no questions.
    """

    item_id: str
    question_id: str
    kind: str = "text"
    label: str = ""
    required: bool = False
    value: Any = None
    passed: bool | None = None
    media: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "InspectionItem":
        if not isinstance(value, Mapping):
            return cls(item_id="", question_id="")
        return cls(
            item_id=_record_id(value, "item_id"),
            question_id=clean_text(value.get("question_id") or value.get("qid")),
            kind=normalize_question_kind(value.get("kind") or value.get("type")),
            label=clean_text(value.get("label")),
            required=_as_bool(value.get("required")),
            value=value.get("value"),
            passed=_as_optional_bool(value.get("pass")),
            media=_parse_media(value.get("media")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "item_id": clean_text(self.item_id),
            "question_id": clean_text(self.question_id),
            "kind": normalize_question_kind(self.kind),
            "label": clean_text(self.label),
            "required": bool(self.required),
            "value": self.value,
            "pass": self.passed,
            "media": list(self.media),
        }


@dataclass(slots=True)
class InspectionRecord:
    inspection_id: str
    template_id: str
    template_name: str = ""
    site: str = ""
    status: str = "in_progress"
    started_at: str = ""
    submitted_at: str = ""
    score: int | None = None
    owner_id: str = ""
    owner_name: str = ""
    signature: str = ""
    items: list[InspectionItem] = field(default_factory=list)

    @property
    def is_submitted(self) -> bool:
        return self.status == "submitted"

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "InspectionRecord":
        if not isinstance(value, Mapping):
            return cls(inspection_id="", template_id="")
        return cls(
            inspection_id=_record_id(value, "inspection_id"),
            template_id=clean_text(value.get("template_id") or value.get("templateId")),
            template_name=clean_text(value.get("template_name") or value.get("templateName")),
            site=clean_text(value.get("site")),
            status=normalize_inspection_status(value.get("status")),
            started_at=clean_text(value.get("started_at") or value.get("startedAt")),
            submitted_at=clean_text(value.get("submitted_at") or value.get("submittedAt")),
            score=_as_score(value.get("score")),
            owner_id=clean_text(value.get("owner_id") or value.get("ownerId")),
            owner_name=clean_text(value.get("owner_name") or value.get("ownerName")),
            signature=clean_text(value.get("signature")),
            items=_parse_inspection_items(value.get("items")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "inspection_id": clean_text(self.inspection_id),
            "template_id": clean_text(self.template_id),
            "template_name": clean_text(self.template_name),
            "site": clean_text(self.site),
            "status": normalize_inspection_status(self.status),
            "started_at": clean_text(self.started_at),
            "submitted_at": clean_text(self.submitted_at),
            "score": _as_score(self.score),
            "owner_id": clean_text(self.owner_id),
            "owner_name": clean_text(self.owner_name),
            "signature": clean_text(self.signature),
            "items": [item.to_mapping() for item in self.items],
        }


@dataclass(slots=True)
class ActionRecord:
    action_id: str
    title: str
    inspection_id: str = ""
    item_id: str = ""
    priority: str = "medium"
    status: str = "open"
    due_date: str = ""
    assignee: str = ""
    created_at: str = ""
    owner_id: str = ""

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any] | None) -> "ActionRecord":
        if not isinstance(value, Mapping):
            return cls(action_id="", title="")
        return cls(
            action_id=_record_id(value, "action_id"),
            title=clean_text(value.get("title")),
            inspection_id=clean_text(value.get("inspection_id") or value.get("inspectionId")),
            item_id=clean_text(value.get("item_id") or value.get("itemId")),
            priority=normalize_action_priority(value.get("priority")),
            status=normalize_action_status(value.get("status")),
            due_date=clean_text(value.get("due_date") or value.get("dueDate")),
            assignee=clean_text(value.get("assignee")),
            created_at=clean_text(value.get("created_at") or value.get("createdAt")),
            owner_id=clean_text(value.get("owner_id") or value.get("ownerId")),
        )

    def to_mapping(self) -> dict[str, str]:
        return {
            "action_id": clean_text(self.action_id),
            "title": clean_text(self.title),
            "inspection_id": clean_text(self.inspection_id),
            "item_id": clean_text(self.item_id),
            "priority": normalize_action_priority(self.priority),
            "status": normalize_action_status(self.status),
            "due_date": clean_text(self.due_date),
            "assignee": clean_text(self.assignee),
            "created_at": clean_text(self.created_at),
            "owner_id": clean_text(self.owner_id),
        }


@dataclass(slots=True)
class AuditDataBundle:
    users: list[UserRecord] = field(default_factory=list)
    current_user_id: str = ""
    templates: list[ChecklistTemplate] = field(default_factory=list)
    inspections: list[InspectionRecord] = field(default_factory=list)
    actions: list[ActionRecord] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "AuditDataBundle":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(
            users=_parse_users(payload.get("users")),
            current_user_id=clean_text(
                payload.get("current_user_id") or payload.get("currentUserId")
            ),
            templates=_parse_templates(payload.get("templates")),
            inspections=_parse_inspections(payload.get("inspections")),
            actions=_parse_actions(payload.get("actions")),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "users": [record.to_mapping() for record in self.users],
            "current_user_id": clean_text(self.current_user_id),
            "templates": [record.to_mapping() for record in self.templates],
            "inspections": [record.to_mapping() for record in self.inspections],
            "actions": [record.to_mapping() for record in self.actions],
        }

    def clone(self) -> "AuditDataBundle":
        return AuditDataBundle.from_payload(self.to_payload())

    def find_user(self, user_id: str) -> UserRecord | None:
        for user in self.users:
            if user.user_id == user_id:
                return user
        return None

    def current_user(self) -> UserRecord | None:
        user = self.find_user(self.current_user_id)
        if user is not None:
            return user
        return self.users[0] if self.users else None

    def find_template(self, template_id: str) -> ChecklistTemplate | None:
        for template in self.templates:
            if template.template_id == template_id:
                return template
        return None

    def find_inspection(self, inspection_id: str) -> InspectionRecord | None:
        for inspection in self.inspections:
            if inspection.inspection_id == inspection_id:
                return inspection
        return None

    def find_action(self, action_id: str) -> ActionRecord | None:
        for action in self.actions:
            if action.action_id == action_id:
                return action
        return None


def build_seed_bundle(*, today: str | None = None) -> AuditDataBundle:
    stamp = today or today_iso()
    return AuditDataBundle(
        users=[
            UserRecord(
                user_id=SEED_ADMIN_USER_ID,
                email="admin@auditking.app",
                name="Audit King Admin",
                roles=["admin"],
            )
        ],
        current_user_id=SEED_ADMIN_USER_ID,
        templates=[
            ChecklistTemplate(
                template_id="tpl-1",
                name="General Safety Walkthrough",
                site="All Sites",
                description="Basic site walkthrough",
                updated_at=stamp,
                items=[
                    TemplateItem(item_id="ppe-helm", kind="yesno", label="Hard hats worn?", required=True),
                    TemplateItem(item_id="ppe-photo", kind="photo", label="Photo evidence"),
                ],
            ),
            ChecklistTemplate(
                template_id="tpl-2",
                name="Warehouse Daily Check",
                site="Manchester DC",
                description="Daily DC checks",
                updated_at=stamp,
                items=[
                    TemplateItem(item_id="walkways", kind="yesno", label="Walkways clear?"),
                    TemplateItem(item_id="fire-tag", kind="yesno", label="Fire extinguishers tagged?"),
                    TemplateItem(item_id="notes", kind="text", label="Notes"),
                ],
            ),
        ],
    )


def _parse_users(value: Any) -> list[UserRecord]:
    return [record for record in _parse_rows(value, UserRecord.from_mapping) if record.user_id]


def _parse_template_items(value: Any) -> list[TemplateItem]:
    return _parse_rows(value, TemplateItem.from_mapping)


def _parse_templates(value: Any) -> list[ChecklistTemplate]:
    return [record for record in _parse_rows(value, ChecklistTemplate.from_mapping) if record.template_id]


def _parse_inspection_items(value: Any) -> list[InspectionItem]:
    return _parse_rows(value, InspectionItem.from_mapping)


def _parse_inspections(value: Any) -> list[InspectionRecord]:
    return [
        record
        for record in _parse_rows(value, InspectionRecord.from_mapping)
        if record.inspection_id
    ]


def _parse_actions(value: Any) -> list[ActionRecord]:
    # Actions without a title cannot be shown or edited, so they are dropped.
    return [
        record
        for record in _parse_rows(value, ActionRecord.from_mapping)
        if record.action_id and record.title
    ]


def _parse_rows(value: Any, parse: Callable[[Mapping[str, Any]], _RecordT]) -> list[_RecordT]:
    if not isinstance(value, list):
        return []
    return [parse(item) for item in value if isinstance(item, Mapping)]
