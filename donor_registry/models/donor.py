import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, String, func, or_
from sqlalchemy.ext.hybrid import hybrid_method
from sqlalchemy.orm import Mapped, mapped_column, validates

from donor_registry.db.base import UUID, Base
from donor_registry.eligibility import next_available_date


class Donor(Base):
    __tablename__ = "donors"

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(), primary_key=True, default=uuid.uuid4, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    father_name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    cnic_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    blood_group: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)

    last_donation: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    next_available_date: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True, comment="Derived: last_donation + 3 calendar months"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @validates("last_donation")
    def validate_last_donation(self, key, value):
        """Keep next_available_date in step with every write of last_donation."""
        self.next_available_date = next_available_date(value)
        return value

    @hybrid_method
    def is_eligible(self, today: date) -> bool:
        """A donor may give again once the eligibility window has passed."""
        return self.next_available_date is None or self.next_available_date <= today

    @is_eligible.expression
    def is_eligible(cls, today: date):
        return or_(cls.next_available_date.is_(None), cls.next_available_date <= today)

    def __repr__(self) -> str:
        return f"<Donor {self.id} {self.name!r} {self.blood_group}>"
