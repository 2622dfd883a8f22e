from __future__ import annotations

from ..extensions import db
from ..validation import money_str
from linato.time_utils import to_utc_z


class CashierShift(db.Model):
    """
    Cash drawer session for one cashier.

    LIFECYCLE:
    - open: closed_at is NULL; new orders by this cashier are tagged with it
    - closed: cash counted, expected cash and discrepancy recorded

    A user has at most one open shift at a time.
    """
    __tablename__ = "cashier_shifts"
    __table_args__ = (
        # At most one open shift per user
        db.Index(
            "uq_cashier_shifts_open_user",
            "user_id",
            unique=True,
            postgresql_where=db.text("closed_at IS NULL"),
            sqlite_where=db.text("closed_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking
    opening_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expected_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)  # opening + cash payments
    discrepancy = db.Column(db.Numeric(12, 2), nullable=False, default=0)  # closing - expected

    notes = db.Column(db.Text, nullable=True)

    user = db.relationship("User", backref=db.backref("shifts", lazy=True))

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "is_open": self.is_open,
            "opening_cash": money_str(self.opening_cash),
            "closing_cash": money_str(self.closing_cash),
            "expected_cash": money_str(self.expected_cash),
            "discrepancy": money_str(self.discrepancy),
            "notes": self.notes,
        }
