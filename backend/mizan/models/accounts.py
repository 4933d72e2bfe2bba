from __future__ import annotations

from ..extensions import db
from mizan.time_utils import to_utc_z


class Account(db.Model):
    """
    Counterparty or system account.

    current_balance is maintained only by the account ledger. Sign policy:
    positive means the customer owes the business; for suppliers, a credit
    raises and a debit lowers the balance.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_accounts_code"),
        db.Index("ix_accounts_type_active", "type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)

    current_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Account id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "current_balance": str(self.current_balance),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Transaction(db.Model):
    """Append-only cash or journal entry against one account."""
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_account_date", "account_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    reference = db.Column(db.String(64), nullable=True, index=True)
    is_debit = db.Column(db.Boolean, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
