"""ORM model for key personnel attached to partners."""

from sqlalchemy import Column, String, Text

from app.models.base import Base, DashboardRecordMixin


class Personnel(DashboardRecordMixin, Base):
    """Key personnel directory entry; email_address is the natural key."""

    __tablename__ = "personnel"

    full_name = Column(String(255), nullable=False, index=True)
    job_title = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    email_address = Column(String(320), nullable=False, unique=True, index=True)
    phone_number = Column(String(64), nullable=True)
    partner_id = Column(String(64), nullable=True, index=True)
    partner_name = Column(String(255), nullable=True)
    partner_type = Column(String(128), nullable=True)
    work_status = Column(String(64), nullable=True)
    responsibilities = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
