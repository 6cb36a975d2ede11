"""SQLAlchemy models for the ledgerkit database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    Float,
    Index,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


class Institution(Base):
    """Financial institution model."""

    __tablename__ = "institutions"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Account(Base):
    """Account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    currency = Column(String, nullable=False, default="BRL")
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=True)
    parent_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (UniqueConstraint("owner_id", "name", name="uq_account_owner_name"),)

    # Relationships
    institution = relationship("Institution")
    parent = relationship("Account", remote_side=[id])
    entries = relationship("LedgerEntry", back_populates="account")


class Category(Base):
    """Category model."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class ImportBatch(Base):
    """Import batch model. One row per imported statement file."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    kind = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    file_hash = Column(String, nullable=False)
    imported_count = Column(Integer, default=0, nullable=False)
    duplicate_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "institution_id", "file_hash", name="uq_import_batch_source"
        ),
    )


class LedgerEntry(Base):
    """Ledger entry model."""

    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    posted_at = Column(Date, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    original_type = Column(String, nullable=False)
    direction = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    normalized_description = Column(String, nullable=False, default="")
    merchant_key = Column(String, nullable=False, default="")
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    external_ref = Column(String, nullable=True)
    # NULLs never collide in a unique constraint, so unfingerprinted entries are free
    fingerprint = Column(String, nullable=True)
    transfer_link_id = Column(Integer, nullable=True)
    import_batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    balance_after_cents = Column(Integer, nullable=True)
    fee_adjusted = Column(Boolean, default=False, nullable=False)
    excluded = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "fingerprint", name="uq_ledger_owner_fingerprint"),
        Index("ix_ledger_owner_posted", "owner_id", "posted_at"),
        Index("ix_ledger_owner_external_ref", "owner_id", "external_ref"),
    )

    # Relationships
    account = relationship("Account", back_populates="entries")


class TransferLink(Base):
    """Transfer link model pairing an outgoing and an incoming entry."""

    __tablename__ = "transfer_links"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    out_entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=False)
    in_entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=False)
    kind = Column(String, nullable=False)
    status = Column(String, nullable=False)
    confidence = Column(Float, nullable=True)
    fee_delta_cents = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (UniqueConstraint("out_entry_id", "in_entry_id", name="uq_transfer_pair"),)


class Transaction(Base):
    """Manually entered transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    transfer_group = Column(String, nullable=True, index=True)
    excluded = Column(Boolean, default=False, nullable=False)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine: Engine = create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
