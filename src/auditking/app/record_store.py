from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping

from PySide6.QtCore import QObject, Signal

from auditking.app import action_tracker, inspection_engine
from auditking.app.checklist_models import (
    SEED_ADMIN_USER_ID,
    ActionRecord,
    AuditDataBundle,
    ChecklistTemplate,
    InspectionRecord,
    UserRecord,
)
from auditking.app.data_store import (
    SNAPSHOT_STORAGE_KEY,
    KeyValueStore,
    load_snapshot,
    save_snapshot,
)
from auditking.app.db_debug import db_debug
from auditking.app.errors import AuthorizationError, StorageFault, ValidationError
from auditking.app.storage_runtime import StorageRuntimeSelection


def upsert_template(bundle: AuditDataBundle, template: ChecklistTemplate) -> AuditDataBundle:
    """Replace the template with the same id in place, or put a new one first."""
    if not template.has_unique_item_ids():
        raise ValidationError("Question ids must be unique within a template.")
    if bundle.find_template(template.template_id) is None:
        return replace(bundle, templates=[template, *bundle.templates])
    return replace(
        bundle,
        templates=[
            template if entry.template_id == template.template_id else entry
            for entry in bundle.templates
        ],
    )


def delete_template(bundle: AuditDataBundle, template_id: str, acting_user: UserRecord) -> AuditDataBundle:
    # Inspections keep their own copy of the template name/site, so nothing cascades.
    if not acting_user.is_admin:
        raise AuthorizationError("Only admins can delete templates.")
    return replace(
        bundle,
        templates=[entry for entry in bundle.templates if entry.template_id != template_id],
    )


def list_templates(bundle: AuditDataBundle, query: str = "") -> list[ChecklistTemplate]:
    needle = (query or "").casefold()
    return [entry for entry in bundle.templates if needle in entry.name.casefold()]


def put_inspection(bundle: AuditDataBundle, inspection: InspectionRecord) -> AuditDataBundle:
    if bundle.find_inspection(inspection.inspection_id) is None:
        return replace(bundle, inspections=[inspection, *bundle.inspections])
    return replace(
        bundle,
        inspections=[
            inspection if entry.inspection_id == inspection.inspection_id else entry
            for entry in bundle.inspections
        ],
    )


def list_inspections(
    bundle: AuditDataBundle,
    user: UserRecord,
    *,
    view_all: bool = False,
) -> list[InspectionRecord]:
    """Inspections newest first; only managers and admins may see everyone's."""
    ordered = sorted(bundle.inspections, key=lambda entry: entry.submitted_at, reverse=True)
    if view_all and user.can_view_all_inspections:
        return ordered
    return [entry for entry in ordered if (entry.owner_id or user.user_id) == user.user_id]


def set_current_user(bundle: AuditDataBundle, user_id: str) -> AuditDataBundle:
    if bundle.find_user(user_id) is None:
        return bundle
    return replace(bundle, current_user_id=user_id)


def adopt_identity(bundle: AuditDataBundle, user: UserRecord) -> AuditDataBundle:
    if bundle.find_user(user.user_id) is None:
        users = [*bundle.users, user]
    else:
        users = [user if entry.user_id == user.user_id else entry for entry in bundle.users]
    return replace(bundle, users=users, current_user_id=user.user_id)


class RecordStore(QObject):
    """Owns the one live snapshot and writes it through after every change.

    Each operation swaps in a new ``AuditDataBundle``; the previous value is
    never modified. Persistence failures are logged and reported through
    ``storage_warning`` while the in-memory snapshot stays authoritative.
    """

    snapshot_changed = Signal(object)
    storage_warning = Signal(str)

    def __init__(
        self,
        key_value_store: KeyValueStore,
        *,
        yesno_default: str = inspection_engine.YESNO_DEFAULT_PASS,
        storage_key: str = SNAPSHOT_STORAGE_KEY,
        logger: logging.Logger | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._key_value_store = key_value_store
        self._yesno_default = inspection_engine.normalize_yesno_default(yesno_default)
        self._storage_key = storage_key
        self._logger = logger or logging.getLogger("auditking.records")
        self._bundle = AuditDataBundle()
        self._last_warning = ""

    @classmethod
    def from_runtime(
        cls,
        selection: StorageRuntimeSelection,
        *,
        logger: logging.Logger | None = None,
        parent: QObject | None = None,
    ) -> "RecordStore":
        """Build a store on the backend and yes/no policy picked by ``build_storage_runtime``."""
        store = cls(
            selection.key_value_store,
            yesno_default=selection.yesno_default,
            logger=logger,
            parent=parent,
        )
        for warning in selection.warnings:
            store._logger.info(warning)
        return store

    @property
    def snapshot(self) -> AuditDataBundle:
        return self._bundle

    @property
    def last_warning(self) -> str:
        return self._last_warning

    @property
    def yesno_default(self) -> str:
        return self._yesno_default

    @property
    def current_user(self) -> UserRecord | None:
        return self._bundle.current_user()

    def load(self) -> AuditDataBundle:
        result = load_snapshot(self._key_value_store, key=self._storage_key)
        self._bundle = result.bundle
        if result.warning:
            self._warn(result.warning)
        db_debug("records.load", source=result.source, templates=len(result.bundle.templates))
        self.snapshot_changed.emit(self._bundle)
        return self._bundle

    def save(self, bundle: AuditDataBundle | None = None) -> bool:
        target = bundle if bundle is not None else self._bundle
        try:
            save_snapshot(self._key_value_store, target, key=self._storage_key)
        except StorageFault as exc:
            self._warn(f"Changes could not be saved: {exc}")
            return False
        return True

    def set_current_user(self, user_id: str) -> None:
        self._commit(set_current_user(self._bundle, user_id), "set_current_user")

    def adopt_identity(self, user: UserRecord) -> None:
        self._commit(adopt_identity(self._bundle, user), "adopt_identity")

    def sign_out(self) -> None:
        self._commit(set_current_user(self._bundle, SEED_ADMIN_USER_ID), "sign_out")

    def templates(self, query: str = "") -> list[ChecklistTemplate]:
        return list_templates(self._bundle, query)

    def save_template(self, template: ChecklistTemplate) -> None:
        self._commit(upsert_template(self._bundle, template), "save_template")

    def delete_template(self, template_id: str) -> None:
        self._commit(delete_template(self._bundle, template_id, self._require_user()), "delete_template")

    def start_inspection(self, template_id: str) -> InspectionRecord | None:
        template = self._bundle.find_template(template_id)
        if template is None:
            return None
        return inspection_engine.instantiate(template, yesno_default=self._yesno_default)

    def save_draft(self, draft: InspectionRecord) -> None:
        if draft.is_submitted:
            raise ValidationError("Submitted inspections cannot be saved as drafts.")
        self._commit(put_inspection(self._bundle, draft), "save_draft")

    def submit_inspection(self, draft: InspectionRecord) -> InspectionRecord:
        submitted = inspection_engine.submit(draft, self._require_user())
        self._commit(put_inspection(self._bundle, submitted), "submit_inspection")
        return submitted

    def inspections(self, *, view_all: bool = False) -> list[InspectionRecord]:
        user = self.current_user
        if user is None:
            return []
        return list_inspections(self._bundle, user, view_all=view_all)

    def create_action(self, title: str, priority: str = "medium", **links: str) -> ActionRecord:
        bundle, action = action_tracker.create_action(
            self._bundle,
            title,
            priority,
            self._require_user(),
            **links,
        )
        self._commit(bundle, "create_action")
        return action

    def update_action(self, action_id: str, patch: Mapping[str, Any]) -> None:
        self._commit(action_tracker.update_action(self._bundle, action_id, patch), "update_action")

    def delete_action(self, action_id: str) -> None:
        self._commit(
            action_tracker.delete_action(self._bundle, action_id, self._require_user()),
            "delete_action",
        )

    def _require_user(self) -> UserRecord:
        user = self.current_user
        if user is None:
            raise AuthorizationError("No active user.")
        return user

    def _commit(self, bundle: AuditDataBundle, operation: str) -> None:
        if bundle is self._bundle:
            return
        self._bundle = bundle
        saved = self.save(bundle)
        db_debug("records.commit", operation=operation, saved=saved)
        self.snapshot_changed.emit(bundle)

    def _warn(self, message: str) -> None:
        self._last_warning = message
        self._logger.warning(message)
        self.storage_warning.emit(message)
