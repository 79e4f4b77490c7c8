from datetime import date, datetime
from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base

class EquipmentORM(Base):
    __tablename__ = "equipment"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_equipment_available_non_negative"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    unit: Mapped[str] = mapped_column(String, nullable=False, default="")

    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

class LoanRequestORM(Base):
    __tablename__ = "loan_requests"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    created_by_uid: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_by_email: Mapped[str] = mapped_column(String, nullable=False, default="")

    status: Mapped[str] = mapped_column(String, nullable=False, default="pending", index=True)

    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    expected_return_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    approved_by_uid: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    returned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # carried through untouched
    academic_year_code: Mapped[str] = mapped_column(String, nullable=False, default="")
    request_date: Mapped[str] = mapped_column(String, nullable=False, default="")
    department_code: Mapped[str] = mapped_column(String, nullable=False, default="")

    items: Mapped[list["LoanRequestItemORM"]] = relationship(
        back_populates="request",
        order_by="LoanRequestItemORM.position",
        cascade="all, delete-orphan",
    )


class LoanRequestItemORM(Base):
    __tablename__ = "loan_request_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(
        String, ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    # no FK: equipment may be deleted after the request was decided
    equipment_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    equipment_name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False, default="")
    unit: Mapped[str] = mapped_column(String, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    request: Mapped[LoanRequestORM] = relationship(back_populates="items")
