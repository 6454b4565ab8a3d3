"""ORM model for compliance and reporting obligations."""

from sqlalchemy import Column, String, Text

from app.models.base import Base, DashboardRecordMixin


class ComplianceRecord(DashboardRecordMixin, Base):
    """One reporting requirement for a partner in a reporting period."""

    __tablename__ = "compliance_records"

    partner_id = Column(String(64), nullable=True, index=True)
    partner_name = Column(String(255), nullable=False, default="Unknown Partner")
    requirement = Column(Text, nullable=False)
    compliance_type = Column(String(64), nullable=False, default="reporting")
    reporting_period = Column(String(64), nullable=True)
    due_date = Column(String(40), nullable=True)
    submission_date = Column(String(40), nullable=True)
    status = Column(String(64), nullable=True)
    audit_status = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
