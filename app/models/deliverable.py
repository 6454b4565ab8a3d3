"""ORM model for partner deliverables and their payment milestones."""

from sqlalchemy import Boolean, Column, Float, String, Text

from app.models.base import Base, DashboardRecordMixin


class Deliverable(DashboardRecordMixin, Base):
    """Deliverable keyed by (partner_id, deliverable_number) when both are known."""

    __tablename__ = "deliverables"

    partner_id = Column(String(64), nullable=True, index=True)
    partner_name = Column(String(255), nullable=True)
    deliverable_number = Column(String(64), nullable=True)
    description = Column(Text, nullable=False)
    milestone_date = Column(String(40), nullable=True)
    status = Column(String(64), nullable=False, default="pending")
    actual_submission = Column(String(40), nullable=True)
    approval_date = Column(String(40), nullable=True)
    payment_percentage = Column(String(32), nullable=True)
    payment_amount = Column(Float, nullable=True)
    payment_status = Column(String(64), nullable=True)
    priority = Column(String(32), nullable=True)
    assigned_to = Column(String(255), nullable=True)
    imported_from_excel = Column(Boolean, nullable=False, default=False)
    imported_at = Column(String(40), nullable=True)
