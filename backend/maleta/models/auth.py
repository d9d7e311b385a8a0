from __future__ import annotations

from ..extensions import db
from maleta.time_utils import to_utc_z


class User(db.Model):
    """
    Back-office user. Identity only: sessions and passwords are handled
    outside this service.

    role: admin | operator
    """
    __tablename__ = "users"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="operator")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
