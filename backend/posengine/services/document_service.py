# Overview: Sequential, year-scoped document numbers for every document series.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence

SERIES_INVOICE = "INV"
SERIES_RECEIPT = "RCP"
SERIES_LAYBY = "LB"
SERIES_QUOTATION = "QT"
SERIES_LOSS = "LOSS"

SERIES = (SERIES_INVOICE, SERIES_RECEIPT, SERIES_LAYBY, SERIES_QUOTATION, SERIES_LOSS)


def format_document_number(series: str, year: int, number: int, pad: int = 5) -> str:
    """INV2025-00001 style: series, year, dash, zero-padded counter."""
    return f"{series}{year}-{number:0{pad}d}"


def _bump(series: str, year: int):
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.series == series,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    return db.session.execute(stmt)


def _allocated(series: str, year: int) -> int:
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(series=series, year=year)
        .scalar()
    )
    return current - 1


def next_document_number(*, series: str, year: int) -> str:
    """
    Atomically allocate the next number of a series for a calendar year.

    Runs inside the caller's transaction: the number is only consumed if
    the caller commits. Uses an atomic UPDATE on the (series, year) row;
    the first allocation of a year inserts the row, and a concurrent
    insert losing the unique race falls back to the UPDATE.
    """
    if series not in SERIES:
        raise ValidationError(f"Unknown document series: {series}")

    result = _bump(series, year)
    if result.rowcount:
        return format_document_number(series, year, _allocated(series, year))

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(series=series, year=year, next_number=2))
        number = 1
    except IntegrityError:
        result = _bump(series, year)
        if not result.rowcount:
            raise
        number = _allocated(series, year)

    return format_document_number(series, year, number)
