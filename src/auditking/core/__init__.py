from __future__ import annotations

from auditking.app.checklist_models import (
    ActionRecord,
    AuditDataBundle,
    ChecklistTemplate,
    InspectionItem,
    InspectionRecord,
    TemplateItem,
    UserRecord,
    build_seed_bundle,
)
from auditking.app.checklist_parser import parse_checklist_text
from auditking.app.errors import AuthorizationError, StorageFault, ValidationError
from auditking.app.inspection_engine import compute_score, instantiate, record_answer, submit, validate
from auditking.app.record_store import RecordStore
from auditking.app.report_projector import ReportDocument, project_report
from auditking.app.storage_runtime import StorageRuntimeSelection, build_storage_runtime
from auditking.app.template_editor import (
    add_item,
    apply_option_preset,
    finalize_template,
    move_item_up,
    new_template,
    remove_item,
    set_item_options,
    template_from_text,
    update_item,
)

__all__ = [
    "ActionRecord",
    "AuditDataBundle",
    "AuthorizationError",
    "ChecklistTemplate",
    "InspectionItem",
    "InspectionRecord",
    "RecordStore",
    "ReportDocument",
    "StorageFault",
    "StorageRuntimeSelection",
    "TemplateItem",
    "UserRecord",
    "ValidationError",
    "add_item",
    "apply_option_preset",
    "build_seed_bundle",
    "build_storage_runtime",
    "compute_score",
    "finalize_template",
    "instantiate",
    "move_item_up",
    "new_template",
    "parse_checklist_text",
    "project_report",
    "record_answer",
    "remove_item",
    "set_item_options",
    "submit",
    "template_from_text",
    "update_item",
    "validate",
]
