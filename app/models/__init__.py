"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.compliance import ComplianceRecord
from app.models.deliverable import Deliverable
from app.models.financial import FinancialRecord
from app.models.partner import ExternalPartner, Partner
from app.models.personnel import Personnel
from app.models.user import User

__all__ = [
    "Base",
    "ComplianceRecord",
    "Deliverable",
    "ExternalPartner",
    "FinancialRecord",
    "Partner",
    "Personnel",
    "User",
]
