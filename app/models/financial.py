"""ORM model for per-partner financial summaries."""

from sqlalchemy import Column, Float, String, Text

from app.models.base import Base, DashboardRecordMixin


class FinancialRecord(DashboardRecordMixin, Base):
    """Budget and quarterly disbursement summary for one partner."""

    __tablename__ = "financial_records"

    partner_id = Column(String(64), nullable=True, index=True)
    partner_name = Column(String(255), nullable=True)
    contract_value = Column(Float, nullable=True)
    budget_allocated = Column(Float, nullable=True)
    actual_spent = Column(Float, nullable=True)
    q1_actual_paid = Column(Float, nullable=True)
    q2_actual_paid = Column(Float, nullable=True)
    q3_actual_paid = Column(Float, nullable=True)
    q4_actual_paid = Column(Float, nullable=True)
    total_disbursed = Column(Float, nullable=True)
    payment_schedule = Column(String(255), nullable=True)
    last_payment_date = Column(String(40), nullable=True)
    next_payment_due = Column(String(40), nullable=True)
    financial_status = Column(String(64), nullable=True)
    comments = Column(Text, nullable=True)
