from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .types import JSONText


class AuditEntry(db.Model):
    """
    Append-only audit trail row.

    User id/name/role are snapshots taken when the event happened; user_id is
    nullable and not cascaded. Storage is unbounded; reads are capped.
    """
    __tablename__ = "audit_trail"
    __table_args__ = (
        db.CheckConstraint(
            "action IN ('login', 'sale', 'inventory_add', 'inventory_edit', 'stock_adjustment')",
            name="ck_audit_trail_action",
        ),
        db.Index("idx_audit_trail_user_id", "user_id"),
        db.Index("idx_audit_trail_action", "action"),
    )

    id = db.Column(db.String(36), primary_key=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(255), nullable=False)
    user_role = db.Column(db.String(16), nullable=False)
    action = db.Column(db.String(32), nullable=False)
    details = db.Column(JSONText(dict), nullable=False)
    ip_address = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<AuditEntry id={self.id} action={self.action} user_id={self.user_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": to_utc_z(self.timestamp),
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "action": self.action,
            "details": dict(self.details or {}),
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }


db.Index("idx_audit_trail_timestamp", AuditEntry.timestamp.desc())
