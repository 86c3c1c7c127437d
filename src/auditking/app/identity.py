from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from auditking.app.checklist_models import UserRecord, clean_text, normalize_roles
from auditking.app.db_debug import db_debug
from auditking.app.settings_store import SupabaseSettings


_DEFAULT_TIMEOUT_SECONDS = 8.0
_BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)
_FALLBACK_ROLE = "inspector"


class IdentityProviderError(RuntimeError):
    """Raised when the identity provider rejects or fails a request."""

    def __init__(self, message: str, *, status: int = 500) -> None:
        super().__init__(message)
        self.status = int(status)


@dataclass(frozen=True, slots=True)
class AdminCheck:
    ok: bool
    status: int = 200
    error: str = ""
    uid: str = ""


class SupabaseIdentityClient:
    """Reads identities from Supabase Auth and the ``profiles`` table.

    All requests authenticate with the service role key, so this client is
    meant for trusted server-side code only.
    """

    def __init__(
        self,
        settings: SupabaseSettings,
        *,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._settings = settings
        self._timeout_seconds = max(1.0, float(timeout_seconds))

    @property
    def configured(self) -> bool:
        return self._settings.configured

    def health(self) -> dict[str, bool]:
        return {
            "ok": True,
            "has_url": bool(self._settings.url),
            "has_service_role": bool(self._settings.service_role_key),
        }

    def get_user(self, access_token: str) -> dict[str, Any]:
        user = self._request_json(
            method="GET",
            path="/auth/v1/user",
            bearer=access_token,
        )
        if not isinstance(user, dict) or not clean_text(user.get("id")):
            raise IdentityProviderError("Invalid token", status=401)
        return user

    def fetch_profile(self, user_id: str) -> dict[str, Any] | None:
        table = quote(self._settings.profiles_table, safe="_")
        query = "?" + urlencode({"select": "*", "user_id": f"eq.{user_id}", "limit": "1"}, safe="*.")
        rows = self._request_json(method="GET", path=f"/rest/v1/{table}", query=query)
        if not isinstance(rows, list) or not rows:
            return None
        first = rows[0]
        return first if isinstance(first, dict) else None

    def resolve_identity(self, access_token: str) -> UserRecord:
        user = self.get_user(access_token)
        user_id = clean_text(user.get("id"))
        profile = self.fetch_profile(user_id) or {}
        metadata = user.get("user_metadata")
        metadata = metadata if isinstance(metadata, dict) else {}
        return UserRecord(
            user_id=user_id,
            email=clean_text(user.get("email")),
            name=clean_text(profile.get("name") or metadata.get("name") or metadata.get("full_name")),
            roles=roles_from_profile(profile),
        )

    def require_admin(self, authorization: str | None) -> AdminCheck:
        match = _BEARER_PATTERN.match(clean_text(authorization))
        if match is None:
            return AdminCheck(ok=False, status=401, error="Missing bearer token")
        if not self.configured:
            return AdminCheck(ok=False, status=500, error="Missing Supabase URL or service role key")

        try:
            user = self.get_user(match.group(1).strip())
        except IdentityProviderError:
            return AdminCheck(ok=False, status=401, error="Invalid token")
        uid = clean_text(user.get("id"))

        try:
            profile = self.fetch_profile(uid)
        except IdentityProviderError as exc:
            return AdminCheck(ok=False, status=500, error=f"Profile lookup failed: {exc}")

        if not profile or not bool(profile.get("is_admin")):
            return AdminCheck(ok=False, status=403, error="Admin only")
        if bool(profile.get("is_banned")):
            return AdminCheck(ok=False, status=403, error="Banned user")
        return AdminCheck(ok=True, uid=uid)

    def list_users(self, *, page: int = 1, per_page: int = 50) -> list[dict[str, Any]]:
        query = "?" + urlencode({"page": max(1, int(page)), "per_page": max(1, int(per_page))})
        try:
            payload = self._request_json(method="GET", path="/auth/v1/admin/users", query=query)
        except IdentityProviderError as exc:
            raise IdentityProviderError(f"admin.listUsers failed: {exc}", status=exc.status) from exc
        users = payload.get("users") if isinstance(payload, dict) else payload
        if not isinstance(users, list):
            return []
        return [entry for entry in users if isinstance(entry, dict)]

    def delete_user(self, user_id: str) -> None:
        normalized = clean_text(user_id)
        if not normalized:
            raise IdentityProviderError("user_id required", status=400)
        try:
            self._request_json(
                method="DELETE",
                path=f"/auth/v1/admin/users/{quote(normalized, safe='')}",
            )
        except IdentityProviderError as exc:
            raise IdentityProviderError(f"admin.deleteUser failed: {exc}", status=exc.status) from exc

    def _request_json(
        self,
        *,
        method: str,
        path: str,
        query: str = "",
        bearer: str = "",
    ) -> Any:
        if not self.configured:
            raise IdentityProviderError("Missing Supabase URL or service role key", status=500)
        request_url = f"{self._settings.url.rstrip('/')}{path}{query}"
        headers = {
            "apikey": self._settings.service_role_key,
            "Authorization": f"Bearer {bearer or self._settings.service_role_key}",
            "Accept": "application/json",
        }
        db_debug("identity.request", method=method.upper(), path=path, query_present=bool(query))
        request = Request(request_url, headers=headers, method=method.upper())

        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                status_code = int(response.getcode() or 0)
                body = response.read()
        except HTTPError as exc:
            detail = ""
            try:
                detail = exc.read().decode("utf-8", errors="replace").strip()
            except OSError:
                detail = ""
            message = f"{exc.code} {exc.reason}"
            if detail:
                message = f"{message}: {detail}"
            db_debug("identity.request.error", method=method.upper(), path=path, code=int(exc.code))
            raise IdentityProviderError(message, status=int(exc.code)) from exc
        except URLError as exc:
            db_debug("identity.request.error", method=method.upper(), path=path, error=str(exc))
            raise IdentityProviderError(f"Identity provider unreachable: {exc}", status=502) from exc

        db_debug(
            "identity.response",
            method=method.upper(),
            path=path,
            status=status_code,
            body_bytes=len(body),
        )
        if not body:
            return None
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise IdentityProviderError(
                f"Identity provider returned non-JSON payload for {path} ({len(body)} bytes).",
                status=502,
            ) from exc


def roles_from_profile(profile: dict[str, Any]) -> list[str]:
    roles = normalize_roles(profile.get("roles"))
    if bool(profile.get("is_admin")) and "admin" not in roles:
        roles.insert(0, "admin")
    if bool(profile.get("is_manager")) and "manager" not in roles:
        roles.append("manager")
    return roles or [_FALLBACK_ROLE]
