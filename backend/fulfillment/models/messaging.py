from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class NotificationQueueEntry(db.Model):
    """
    Outgoing email/notification request.

    The pipeline only inserts rows; a separate mailer (outside this service)
    drains PENDING entries.
    """
    __tablename__ = "email_queue"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(255), nullable=False)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    variables = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient": self.recipient,
            "event_type": self.event_type,
            "variables": self.variables,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class OutboxEvent(db.Model):
    """
    Deferred background work emitted by the submission path.

    STATUS: PENDING -> DONE, or FAILED once attempts reach the configured
    maximum. Processing happens outside the request that wrote the row.
    """
    __tablename__ = "outbox_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
        }


class SubmissionRateWindow(db.Model):
    """Fixed-window submission counter per purchaser."""
    __tablename__ = "submission_rate_windows"
    __table_args__ = (
        db.UniqueConstraint("user_id", "window_start", name="uq_rate_window_user_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    window_start = db.Column(db.DateTime(timezone=True), nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)
