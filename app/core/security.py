from __future__ import annotations

import secrets

from app.core.config import admin_auth_enabled, settings


def verify_admin_password(admin_password: str) -> bool:
    # If ADMIN_PASSWORD is not configured, allow for local/dev.
    if not admin_auth_enabled():
        return True
    return secrets.compare_digest(
        admin_password.encode("utf-8"), settings.admin_password.encode("utf-8")
    )
