from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    SmallInteger,
    String,
    UniqueConstraint,
    func,
)


Base = declarative_base()

MAX_TICKETS_PER_TAXPAYER = 3


# ----------------------------
# ORM models
# ----------------------------
class Ticket(Base):
    __tablename__ = "tickets"
    id = Column(String(36), primary_key=True)
    taxpayer_id = Column(String(11), nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    # quota slot 1..N per taxpayer; the unique pair is what enforces the quota
    slot = Column(SmallInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("taxpayer_id", "slot",
                         name="tickets_taxpayer_slot_key"),
        CheckConstraint(
            f"slot BETWEEN 1 AND {MAX_TICKETS_PER_TAXPAYER}",
            name="tickets_slot_range",
        ),
    )
