from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-series, per-year document counter.

    WHY: Counting existing rows to derive the next number hands out
    duplicates under concurrency. A counter row bumped with an atomic
    UPDATE cannot.

    next_number is the number the next allocation will receive.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("series", "year", name="uq_document_sequences_series_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    series = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
