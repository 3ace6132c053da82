"""
Record and draft data model, the fixed store column schema, and the
confirmation-status state machine.
"""

from dataclasses import dataclass, asdict, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from .errors import ValidationError

# Fixed column schema of the durable store, header row first
COLUMNS = ["ID", "Topics", "Tags", "key facts", "Last Updated", "Confirmation Status"]
HEADER_ROWS = 1

STATUS_COLUMN = "Confirmation Status"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    AUTO_DELETED = "auto-deleted"


# Transitions the system performs on its own. Manual status updates bypass this table.
AUTOMATIC_TRANSITIONS = {
    ConfirmationStatus.PENDING: {ConfirmationStatus.CONFIRMED, ConfirmationStatus.AUTO_DELETED},
    ConfirmationStatus.CONFIRMED: set(),
    ConfirmationStatus.AUTO_DELETED: set(),
}


def parse_status(value) -> ConfirmationStatus:
    """Parse a confirmation status, raising ValidationError for unknown values."""
    if isinstance(value, ConfirmationStatus):
        return value
    try:
        return ConfirmationStatus(str(value).strip().lower())
    except ValueError:
        valid = [s.value for s in ConfirmationStatus]
        raise ValidationError(f"Invalid confirmation status '{value}'. Must be one of: {valid}")


def can_transition(current, target) -> bool:
    """Check whether an automatic transition from current to target is allowed."""
    try:
        current = ConfirmationStatus(current)
        target = ConfirmationStatus(target)
    except ValueError:
        return False
    return target in AUTOMATIC_TRANSITIONS[current]


def parse_date(value) -> Optional[date]:
    """Parse a day-granularity date from a store cell or query parameter.

    Accepts ISO dates, ISO timestamps (only the date part is kept) and
    US-style M/D/YYYY as rendered by spreadsheet UIs. Returns None when the
    value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    for candidate, fmt in ((text[:10], "%Y-%m-%d"), (text.split(" ")[0], "%m/%d/%Y")):
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None


def parse_record_id(value) -> Optional[int]:
    """Parse the ID cell. Returns None for blank, non-integer or non-positive ids."""
    try:
        record_id = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return record_id if record_id > 0 else None


def _cell(row: List, index: int) -> str:
    if index < len(row) and row[index] is not None:
        return str(row[index])
    return ""


@dataclass
class Record:
    id: int
    topics: str
    tags: str
    key_facts: str
    last_updated: Optional[date]
    confirmation_status: str = ConfirmationStatus.PENDING.value

    @property
    def status(self) -> Optional[ConfirmationStatus]:
        try:
            return ConfirmationStatus(self.confirmation_status)
        except ValueError:
            return None

    def to_row(self) -> List:
        """Convert to a store row in COLUMNS order."""
        return [
            self.id,
            self.topics,
            self.tags,
            self.key_facts,
            self.last_updated.isoformat() if self.last_updated else "",
            self.confirmation_status,
        ]

    def field_values(self) -> List[str]:
        """All field values as text, used for full-text matching."""
        return [str(v) for v in self.to_row()]

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["last_updated"] = self.last_updated.isoformat() if self.last_updated else None
        return data

    @classmethod
    def from_row(cls, row: List) -> Optional["Record"]:
        """Map a store row to a Record. Returns None when the ID cell is unusable."""
        record_id = parse_record_id(_cell(row, 0))
        if record_id is None:
            return None

        return cls(
            id=record_id,
            topics=_cell(row, 1),
            tags=_cell(row, 2),
            key_facts=_cell(row, 3),
            last_updated=parse_date(_cell(row, 4)),
            confirmation_status=_cell(row, 5).strip().lower(),
        )


@dataclass
class Draft:
    """A summary card waiting for confirmation. Lives only in the DraftQueue."""
    token: str
    topics: str
    tags: str
    key_facts: str
    last_updated: date
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            "token": self.token,
            "topics": self.topics,
            "tags": self.tags,
            "key_facts": self.key_facts,
            "last_updated": self.last_updated.isoformat(),
            "created_at": self.created_at.isoformat(),
            "confirmation_status": ConfirmationStatus.PENDING.value,
        }
