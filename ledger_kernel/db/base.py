"""
Module: ledger_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the integer surrogate key convention and the type annotation map for
    consistent column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Ordered surrogate keys: every model has an autoincrementing integer id.
      The transaction log relies on it as the tie-break for rows sharing a
      created_at instant, so ids must grow with insertion order.
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(15, 2).  NEVER use float for monetary amounts.
    - Wall-clock timestamps: datetime maps to a naive DateTime.  All times
      are the restaurant's local wall-clock time as produced by the injected
      Clock (see domain/clock.py).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Date, DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements an INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrementing integer primary key.
        - Decimal maps to Numeric(15, 2), returned as Decimal.
        - datetime maps to a naive DateTime; date maps to Date.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(15, 2, asdecimal=True),
        datetime: DateTime(timezone=False),
        date: Date,
    }

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )
