"""
App settings access - the singleton row plus admin recipient resolution.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.app_settings import AppSettings, EmailToggle, SINGLETON_KEY
from ..utils.security import normalize_email

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "business_name",
    "support_email",
    "support_phone",
    "admin_notify_email",
    "timezone",
)


def get_app_settings(db: Session) -> Optional[AppSettings]:
    return db.query(AppSettings).filter(AppSettings.singleton_key == SINGLETON_KEY).first()


def get_or_create_app_settings(db: Session) -> AppSettings:
    row = get_app_settings(db)
    if row:
        return row
    row = AppSettings(singleton_key=SINGLETON_KEY, email_toggles={})
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        row = get_app_settings(db)
    return row


def update_app_settings(db: Session, changes: dict) -> AppSettings:
    row = get_or_create_app_settings(db)
    for field in UPDATABLE_FIELDS:
        if field in changes:
            setattr(row, field, changes[field])
    if changes.get("email_toggles") is not None:
        toggles = dict(row.email_toggles or {})
        for key, value in changes["email_toggles"].items():
            # Unknown keys are dropped rather than stored
            if key in EmailToggle._value2member_map_:
                toggles[key] = bool(value)
        row.email_toggles = toggles
    db.commit()
    db.refresh(row)
    logger.info("App settings updated")
    return row


def is_toggle_enabled(app_settings: Optional[AppSettings], toggle: EmailToggle) -> bool:
    """Missing settings row or missing key both mean enabled"""
    if app_settings is None:
        return True
    return app_settings.is_enabled(toggle)


def resolve_admin_email(app_settings: Optional[AppSettings]) -> Optional[str]:
    """
    admin_notify_email, then ADMIN_EMAIL. A candidate equal to the sender
    address is skipped so we never mail ourselves.
    """
    sender = normalize_email(settings.email_from)
    candidates = [
        app_settings.admin_notify_email if app_settings else None,
        settings.admin_email,
    ]
    for candidate in candidates:
        email = normalize_email(candidate)
        if email and email != sender:
            return email
    return None
