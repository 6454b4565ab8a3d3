"""Map spreadsheet rows (header text -> cell) to snake_case record payloads per entity."""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from app.services.storage import (
    COMPLIANCE,
    DELIVERABLES,
    FINANCIALS,
    KEY_PERSONNEL,
    MASTER_REGISTER,
)

# Excel serial day 0 (1900 date system, including the 1900 leap-year bug offset).
_EXCEL_EPOCH = datetime(1899, 12, 30)
_EXCEL_SERIAL_MAX = 2958465  # 9999-12-31

_MONEY_STRIP = re.compile(r"[^\d.\-]")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
)


class RowSkipped(Exception):
    """A row lacks required fields; preview holds its key fields for the log line."""

    def __init__(self, message: str, preview: dict[str, Any]):
        self.message = message
        self.preview = preview
        super().__init__(message)


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        # Numeric ids typed into Excel come back as 7.0
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    s = str(value).strip()
    return s or None


def normalize_money(value: Any) -> float | None:
    """Float from a money cell: every character but digits, '.' and '-' is dropped."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _MONEY_STRIP.sub("", str(value))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def normalize_date(value: Any) -> str | None:
    """ISO-8601 string from a date cell, Excel serial number or date-like text; else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        if 1 <= value <= _EXCEL_SERIAL_MAX:
            return (_EXCEL_EPOCH + timedelta(days=float(value))).isoformat()
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).isoformat()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).isoformat()
        except ValueError:
            continue
    return None


def pick(record: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    """First non-blank value whose header matches an alias (case-insensitive, trimmed)."""
    lookup: dict[str, Any] = {}
    for key, value in record.items():
        lookup.setdefault(str(key).strip().lower(), value)
    for alias in aliases:
        value = lookup.get(alias.strip().lower())
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return None


@dataclass(frozen=True)
class EntityMapping:
    """How one entity's rows map to record fields."""

    name: str
    collection: str
    aliases: dict[str, tuple[str, ...]]
    required: tuple[str, ...] = ()
    # At least one of these must be present.
    any_of: tuple[str, ...] = ()
    money_fields: frozenset[str] = field(default_factory=frozenset)
    date_fields: frozenset[str] = field(default_factory=frozenset)
    defaults: dict[str, Any] = field(default_factory=dict)
    preview_fields: tuple[str, ...] = ()

    def map_row(self, record: dict[str, Any]) -> dict[str, Any]:
        """Payload for a row; raises RowSkipped when required fields are missing."""
        payload: dict[str, Any] = {}
        for fld, aliases in self.aliases.items():
            raw = pick(record, aliases)
            if fld in self.money_fields:
                payload[fld] = normalize_money(raw)
            elif fld in self.date_fields:
                payload[fld] = normalize_date(raw)
            else:
                payload[fld] = _str_or_none(raw)
        for fld, default in self.defaults.items():
            if payload.get(fld) is None:
                payload[fld] = default

        missing = [f for f in self.required if payload.get(f) is None]
        if self.any_of and all(payload.get(f) is None for f in self.any_of):
            missing.append("/".join(self.any_of))
        if missing:
            preview = {f: payload.get(f) for f in self.preview_fields}
            raise RowSkipped(f"missing required fields: {', '.join(missing)}", preview)
        return payload


PARTNER_ID_ALIASES = ("Partner ID", "partnerId", "Partner No", "Partner#", "partner_id")
PARTNER_NAME_ALIASES = (
    "Partner Name", "Name", "Organisation", "Organization", "Organisation Name",
    "Org Name", "Company", "partnerName", "partner_name",
)

PARTNERS = EntityMapping(
    name="partners",
    collection=MASTER_REGISTER,
    aliases={
        "partner_id": PARTNER_ID_ALIASES,
        "partner_name": PARTNER_NAME_ALIASES,
        "partner_type": ("Partner Type", "Type", "Organisation Type", "partnerType"),
        "contact_email": (
            "Contact Email", "Email", "Email Address", "Primary Contact Email",
            "Contact", "contactEmail",
        ),
        "contact_phone": ("Contact Phone", "Phone", "Telephone"),
        "contract_status": ("Contract Status", "Status"),
        "contract_start_date": ("Agreement Date", "Start Date", "Contract Start Date"),
        "commencement_date": ("Commencement", "Commencement Date"),
        "contract_duration": ("Term", "Contract Duration", "Duration"),
        "contract_value": ("Price (Y1)", "Contract Value", "Value"),
        "regions_of_operation": ("Regions", "Regions of Operation"),
        "key_personnel": ("Key Personnel", "Key_personnel"),
        "comments": ("Comments", "Notes"),
    },
    required=("partner_name", "partner_type", "contact_email"),
    money_fields=frozenset({"contract_value"}),
    date_fields=frozenset({"contract_start_date", "commencement_date"}),
    preview_fields=("partner_id", "partner_name", "partner_type", "contact_email"),
)

PERSONNEL = EntityMapping(
    name="personnel",
    collection=KEY_PERSONNEL,
    aliases={
        "full_name": ("Full Name", "Name", "fullName"),
        "job_title": ("Job Title", "Title", "Position", "Role"),
        "department": ("Department",),
        "email_address": ("Email", "Email Address", "emailAddress"),
        "phone_number": ("Phone", "Phone Number", "Telephone"),
        "partner_id": PARTNER_ID_ALIASES,
        "partner_name": ("Partner Name", "Organisation", "Organization", "partnerName"),
        "partner_type": ("Partner Type", "partnerType"),
        "work_status": ("Status", "Work Status"),
        "responsibilities": ("Responsibilities",),
        "notes": ("Notes", "Comments"),
    },
    required=("full_name", "email_address"),
    preview_fields=("full_name", "email_address", "partner_id"),
)

DELIVERABLE = EntityMapping(
    name="deliverables",
    collection=DELIVERABLES,
    aliases={
        "partner_id": PARTNER_ID_ALIASES + ("Partner",),
        "partner_name": ("Partner Name", "partnerName"),
        "deliverable_number": ("Deliverable #", "Deliverable No", "deliverableNumber", "No"),
        "description": ("Description", "Deliverable Description", "Deliverable"),
        "milestone_date": ("Milestone Date", "Due Date", "milestoneDate"),
        "status": ("Status",),
        "actual_submission": ("Actual Submission", "Submission Date"),
        "approval_date": ("Approval Date", "approvalDate"),
        "payment_percentage": ("% Payment", "Payment %", "paymentPercentage"),
        "payment_amount": ("Payment Amount", "paymentAmount"),
        "payment_status": ("Payment Status", "paymentStatus"),
        "priority": ("Priority",),
        "assigned_to": ("Assigned To", "assignedTo", "Owner"),
    },
    required=("description",),
    any_of=("partner_id", "partner_name"),
    money_fields=frozenset({"payment_amount"}),
    date_fields=frozenset({"milestone_date", "actual_submission", "approval_date"}),
    defaults={"status": "pending"},
    preview_fields=("partner_id", "partner_name", "deliverable_number", "description"),
)

FINANCIAL = EntityMapping(
    name="financials",
    collection=FINANCIALS,
    aliases={
        "partner_id": PARTNER_ID_ALIASES,
        "partner_name": PARTNER_NAME_ALIASES,
        "contract_value": ("Contract Value", "Value"),
        "budget_allocated": ("Budget Allocated", "Budget"),
        "actual_spent": ("Actual Spent", "Spent"),
        "q1_actual_paid": ("Q1 Actual Paid", "Q1 Paid", "Q1"),
        "q2_actual_paid": ("Q2 Actual Paid", "Q2 Paid", "Q2"),
        "q3_actual_paid": ("Q3 Actual Paid", "Q3 Paid", "Q3"),
        "q4_actual_paid": ("Q4 Actual Paid", "Q4 Paid", "Q4"),
        "total_disbursed": ("Total Disbursed", "Total Paid"),
        "payment_schedule": ("Payment Schedule",),
        "last_payment_date": ("Last Payment Date", "Last Payment"),
        "next_payment_due": ("Next Payment Due", "Next Payment"),
        "financial_status": ("Financial Status", "Status"),
        "comments": ("Comments", "Notes"),
    },
    any_of=("partner_id", "partner_name"),
    money_fields=frozenset({
        "contract_value", "budget_allocated", "actual_spent", "q1_actual_paid",
        "q2_actual_paid", "q3_actual_paid", "q4_actual_paid", "total_disbursed",
    }),
    date_fields=frozenset({"last_payment_date", "next_payment_due"}),
    preview_fields=("partner_id", "partner_name"),
)

COMPLIANCE_MAPPING = EntityMapping(
    name="compliance",
    collection=COMPLIANCE,
    aliases={
        "partner_id": PARTNER_ID_ALIASES,
        "partner_name": PARTNER_NAME_ALIASES,
        "requirement": ("Requirement", "Report", "Reporting Requirement", "Obligation"),
        "compliance_type": ("Compliance Type", "Type"),
        "reporting_period": ("Reporting Period", "Period", "Quarter"),
        "due_date": ("Due Date", "Deadline"),
        "submission_date": ("Submission Date", "Submitted"),
        "status": ("Status",),
        "audit_status": ("Audit Status", "Audit"),
        "notes": ("Notes", "Comments"),
    },
    required=("requirement",),
    any_of=("partner_id", "partner_name"),
    date_fields=frozenset({"due_date", "submission_date"}),
    defaults={"compliance_type": "reporting"},
    preview_fields=("partner_id", "partner_name", "requirement", "reporting_period"),
)

MAPPINGS: dict[str, EntityMapping] = {
    m.name: m for m in (PARTNERS, PERSONNEL, DELIVERABLE, FINANCIAL, COMPLIANCE_MAPPING)
}
