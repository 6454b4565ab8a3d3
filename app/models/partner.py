"""ORM models for consortium partners (master register) and external partners."""

from sqlalchemy import Column, Float, String, Text

from app.models.base import Base, DashboardRecordMixin


class Partner(DashboardRecordMixin, Base):
    """Row of the partner master register. partner_id is the business key (e.g. P-07)."""

    __tablename__ = "partners"

    partner_id = Column(String(64), nullable=True, unique=True, index=True)
    partner_name = Column(String(255), nullable=False, index=True)
    partner_type = Column(String(128), nullable=False)
    contact_email = Column(String(320), nullable=False, index=True)
    contact_phone = Column(String(64), nullable=True)
    contract_status = Column(String(64), nullable=True)
    contract_start_date = Column(String(40), nullable=True)
    commencement_date = Column(String(40), nullable=True)
    contract_duration = Column(String(128), nullable=True)
    contract_value = Column(Float, nullable=True)
    regions_of_operation = Column(Text, nullable=True)
    key_personnel = Column(Text, nullable=True)
    comments = Column(Text, nullable=True)


class ExternalPartner(DashboardRecordMixin, Base):
    """Prospective or external partner tracked through an engagement pipeline."""

    __tablename__ = "external_partners"

    partner_name = Column(String(255), nullable=False, index=True)
    partner_type = Column(String(128), nullable=True)
    key_contact = Column(Text, nullable=True)
    contact_email = Column(String(320), nullable=True)
    contact_phone = Column(String(64), nullable=True)
    date_initiated = Column(String(40), nullable=True)
    current_stage = Column(String(128), nullable=True)
    key_objectives = Column(Text, nullable=True)
    status = Column(String(64), nullable=True)
    pending_tasks = Column(Text, nullable=True)
    responsible = Column(String(255), nullable=True)
    deadline = Column(String(40), nullable=True)
    notes_blockers = Column(Text, nullable=True)
    estimated_value = Column(Float, nullable=True)
    priority = Column(String(32), nullable=True)
    region = Column(String(128), nullable=True)
