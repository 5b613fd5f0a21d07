from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime
from securevault.core.database import Base


class MigrationRecord(Base):
    """Ledger row: one per applied schema version"""
    __tablename__ = "migrations"

    # Not autoincrement - the version comes from the migration definition
    version = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    executed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
