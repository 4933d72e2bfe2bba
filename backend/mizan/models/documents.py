from __future__ import annotations

from ..extensions import db
from mizan.time_utils import to_utc_z


class Document(db.Model):
    """
    Sales invoice or purchase document.

    LIFECYCLE:
    1. draft: header and lines freely edited or deleted
    2. posted: stock movements and journal entries applied exactly once
    3. cancelled: draft abandoned, or posted document reversed by
       compensating movements and entries (history is never edited)

    kind is the discriminator; the INV-/PUR- number prefix is display only.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_documents_number"),
        db.Index("ix_documents_kind_status", "kind", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(32), nullable=False)
    kind = db.Column(db.String(16), nullable=False)

    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cost_of_goods_sold = db.Column(db.Numeric(14, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "DocumentLine",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLine.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "kind": self.kind,
            "account_id": self.account_id,
            "warehouse_id": self.warehouse_id,
            "date": to_utc_z(self.date),
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "total": str(self.total),
            "cost_of_goods_sold": None if self.cost_of_goods_sold is None else str(self.cost_of_goods_sold),
            "notes": self.notes,
            "posted_at": to_utc_z(self.posted_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class DocumentLine(db.Model):
    __tablename__ = "document_lines"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    line_total = db.Column(db.Numeric(14, 2), nullable=False)

    document = db.relationship("Document", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-kind document number counters.

    WHY: Two clerks requesting the next invoice number at once must not
    both receive INV-42.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("kind", name="uq_document_sequences_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
