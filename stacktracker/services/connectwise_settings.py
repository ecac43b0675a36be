"""
connectwise_settings.py — ConnectWise credential storage

Business Rules:
- At most one settings row exists; save creates it or updates it in place
- The private key is write-only: reads expose has_private_key, never the key
- KEEP_SECRET leaves the stored key untouched; any other value replaces it
- The first save must carry a private key
- A connection test without a key borrows the stored one

Called by: routers/connectwise.py
Depends on: models (ConnectwiseSettings, Baseline), connectors/connectwise.py
"""

from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.connectwise import ConnectWiseClient
from ..models import Baseline, ConnectwiseSettings

CREDENTIAL_FIELDS = ("company_id", "public_key", "site_url", "client_id")


class _KeepSecret:
    def __repr__(self):
        return "KEEP_SECRET"


KEEP_SECRET = _KeepSecret()


class SettingsError(ValueError):
    """Rejected settings payload."""


def secret_from_input(value: str | None):
    """Map the API's optional private_key to KEEP_SECRET or a replacement."""
    return value if value else KEEP_SECRET


def get_settings_row(db: Session) -> ConnectwiseSettings | None:
    return db.query(ConnectwiseSettings).first()


def settings_to_dict(row: ConnectwiseSettings) -> dict:
    return {
        "id": row.id,
        "company_id": row.company_id,
        "public_key": row.public_key,
        "site_url": row.site_url,
        "client_id": row.client_id,
        "enabled": bool(row.enabled),
        "has_private_key": bool(row.private_key),
        "default_baseline_id": row.default_baseline_id,
        "last_sync_at": row.last_sync_at,
        "last_sync_status": row.last_sync_status,
        "last_sync_message": row.last_sync_message,
    }


def save_settings(db: Session, data: dict, private_key) -> ConnectwiseSettings:
    """Create or update the settings row.

    `data` holds the credential fields plus enabled/default_baseline_id;
    `private_key` is KEEP_SECRET or the new key.
    """
    baseline_id = data.get("default_baseline_id")
    if baseline_id and not db.get(Baseline, baseline_id):
        raise SettingsError("Default baseline not found")

    row = get_settings_row(db)
    if row is None:
        if private_key is KEEP_SECRET:
            raise SettingsError("Private key is required")
        row = ConnectwiseSettings()
        db.add(row)

    for key in CREDENTIAL_FIELDS:
        setattr(row, key, data[key])
    row.enabled = bool(data.get("enabled", False))
    row.default_baseline_id = baseline_id
    if private_key is not KEEP_SECRET:
        row.private_key = private_key

    db.commit()
    db.refresh(row)
    return row


def client_for_test(db: Session, creds: dict, private_key) -> ConnectWiseClient:
    """Build a client from submitted credentials, falling back to the stored key."""
    if private_key is KEEP_SECRET:
        row = get_settings_row(db)
        if not row or not row.private_key:
            raise SettingsError("Private key is required")
        private_key = row.private_key
    return ConnectWiseClient(
        company_id=creds["company_id"],
        public_key=creds["public_key"],
        private_key=private_key,
        site_url=creds["site_url"],
        client_id=creds["client_id"],
        timeout=settings.connectwise_timeout_seconds,
    )


def stored_client(db: Session) -> ConnectWiseClient:
    """Client for the saved credentials, for read-only lookups like company types."""
    row = get_settings_row(db)
    if not row or not row.private_key:
        raise SettingsError("ConnectWise settings not configured")
    return ConnectWiseClient.from_settings(row, timeout=settings.connectwise_timeout_seconds)
