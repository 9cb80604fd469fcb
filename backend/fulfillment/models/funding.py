from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class FundingPool(db.Model):
    """
    Prepaid vendor balance (ZMA) shared by every order.

    balance_cents is the last balance observed from the vendor; it is only
    changed by external settlement (synced through BALANCE_SYNC entries).
    committed_cents is the running total reserved by orders awaiting funds and
    is mutated only while the row is locked.
    """
    __tablename__ = "funding_pools"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    committed_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_checked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "balance_cents": self.balance_cents,
            "committed_cents": self.committed_cents,
            "balance_checked_at": to_utc_z(self.balance_checked_at),
        }


class FundingLedgerEntry(db.Model):
    """
    Append-only ledger of pool bookkeeping.

    ENTRY TYPES:
    - COMMIT: order deferred, amount reserved against future balance
    - RELEASE: deferred order funded, reservation removed
    - BYPASS: trusted caller skipped the gate
    - BALANCE_SYNC: balance refreshed from the vendor
    """
    __tablename__ = "funding_ledger_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey("funding_pools.id"), nullable=False, index=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=True, index=True)
    entry_type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    committed_after_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    pool = db.relationship("FundingPool", backref=db.backref("entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pool_id": self.pool_id,
            "order_id": self.order_id,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
            "committed_after_cents": self.committed_after_cents,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
