"""
Record kinds mirrored from the remote tables.

Each kind is an immutable dataclass that knows its backing table, its
natural ordering and how to translate between remote rows (snake_case
columns) and the API shape (camelCase keys) the site front end reads.
"""
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from logging_config import logger
from sync.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_TOOL_BUTTONS = 5
DEFAULT_ICON = "🤖"
DEFAULT_LAUNCH_DAYS = "15 Days"


def utc_now_iso() -> str:
    """Timestamp in the same shape the browser's toISOString() produced"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


class ToolStatus(str, Enum):
    """Showcase status of a tool"""
    LIVE = "LIVE"
    COMING_SOON = "COMING SOON"

    @classmethod
    def parse(cls, value: Any) -> "ToolStatus":
        if isinstance(value, cls):
            return value
        text = _text(value).strip().upper().replace("_", " ")
        if text == cls.LIVE.value:
            return cls.LIVE
        return cls.COMING_SOON


class RequestCategory(str, Enum):
    """Categories offered by the tool-request form"""
    PRODUCTIVITY = "Productivity"
    CREATIVE = "Creative"
    BUSINESS = "Business"
    EDUCATION = "Education"

    @classmethod
    def parse(cls, value: Any) -> "RequestCategory":
        if isinstance(value, cls):
            return value
        text = _text(value).strip()
        if not text:
            return cls.PRODUCTIVITY
        for category in cls:
            if category.value.lower() == text.lower():
                return category
        raise ValidationError(f"Unknown category: {text}", field="category")


@dataclass(frozen=True)
class ToolButton:
    """One call-to-action button on a tool card"""
    name: str = ""
    link: str = ""

    @classmethod
    def parse(cls, value: Any) -> "ToolButton":
        if isinstance(value, ToolButton):
            return value
        if isinstance(value, Mapping):
            return cls(name=_text(value.get("name")), link=_text(value.get("link")))
        raise ValidationError("Tool buttons must be objects with 'name' and 'link'", field="buttons")

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "link": self.link}


def _legacy_buttons(row: Mapping[str, Any]) -> Tuple[ToolButton, ...]:
    """Older rows stored a single button in flat columns"""
    name = row.get("button_name", row.get("buttonName"))
    link = row.get("button_link", row.get("buttonLink"))
    if name is None and link is None:
        return ()
    return (ToolButton(name=_text(name), link=_text(link)),)


def _stored_buttons(tool_id: Any, raw: Any) -> Tuple[ToolButton, ...]:
    """Buttons of a stored row; malformed entries are dropped, not fatal"""
    if not isinstance(raw, (list, tuple)):
        logger.warning("Tool row has non-list buttons, ignoring them", tool_id=tool_id)
        return ()
    buttons = []
    for value in raw:
        try:
            buttons.append(ToolButton.parse(value))
        except ValidationError:
            logger.warning("Dropping malformed tool button", tool_id=tool_id, button=repr(value))
    return tuple(buttons)


@dataclass(frozen=True)
class Tool:
    """A tool on the showcase"""

    TABLE: ClassVar[str] = "tools"
    ORDER_COLUMN: ClassVar[str] = "created_at"
    DESCENDING: ClassVar[bool] = False
    MUTABLE: ClassVar[bool] = True
    LOCAL_IDS: ClassVar[bool] = True
    UNIQUE_FIELD: ClassVar[Optional[str]] = None
    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("name",)

    id: Any
    name: str
    description: str = ""
    status: ToolStatus = ToolStatus.LIVE
    icon: str = DEFAULT_ICON
    buttons: Tuple[ToolButton, ...] = field(default_factory=tuple)
    launch_days: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Tool":
        raw_buttons = row.get("buttons")
        if raw_buttons:
            buttons = _stored_buttons(row.get("id"), raw_buttons)
        else:
            buttons = _legacy_buttons(row)
        return cls(
            id=row.get("id"),
            name=_text(row.get("name")),
            description=_text(row.get("description")),
            status=ToolStatus.parse(row.get("status")),
            icon=_text(row.get("icon")) or DEFAULT_ICON,
            buttons=buttons,
            launch_days=row.get("launch_days", row.get("launchDays")),
            created_at=_text(row.get("created_at", row.get("createdAt"))),
        )

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], record_id: Any, now: str) -> "Tool":
        tool = cls(id=record_id, name="", created_at=now)._with(fields)
        tool.validate()
        return tool

    def _with(self, fields: Mapping[str, Any]) -> "Tool":
        changes: Dict[str, Any] = {}
        if "name" in fields:
            changes["name"] = _text(fields["name"]).strip()
        if "description" in fields:
            changes["description"] = _text(fields["description"])
        if "status" in fields:
            changes["status"] = ToolStatus.parse(fields["status"])
        if "icon" in fields:
            changes["icon"] = _text(fields["icon"]) or DEFAULT_ICON
        if "buttons" in fields:
            changes["buttons"] = tuple(ToolButton.parse(b) for b in fields["buttons"] or ())
        if "launch_days" in fields:
            changes["launch_days"] = fields["launch_days"] or None
        return replace(self, **changes)

    def merge(self, fields: Mapping[str, Any]) -> "Tool":
        tool = self._with(fields)
        tool.validate()
        return tool

    def validate(self) -> None:
        if not self.name.strip():
            raise ValidationError("Tool name is required", field="name")
        if not 1 <= len(self.buttons) <= MAX_TOOL_BUTTONS:
            raise ValidationError(
                f"A tool needs between 1 and {MAX_TOOL_BUTTONS} buttons", field="buttons"
            )
        if self.status is ToolStatus.LIVE:
            for button in self.buttons:
                if not button.link.strip():
                    raise ValidationError("Live tools need a link on every button", field="buttons")

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "icon": self.icon,
            "launch_days": self.launch_days,
            "buttons": [b.to_dict() for b in self.buttons],
            "created_at": self.created_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "icon": self.icon,
            "buttons": [b.to_dict() for b in self.buttons],
            "launchDays": self.launch_days if self.status is ToolStatus.COMING_SOON else None,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class ToolRequest:
    """A visitor's request for a new tool"""

    TABLE: ClassVar[str] = "requests"
    ORDER_COLUMN: ClassVar[str] = "submitted_at"
    DESCENDING: ClassVar[bool] = True
    MUTABLE: ClassVar[bool] = False
    LOCAL_IDS: ClassVar[bool] = False
    UNIQUE_FIELD: ClassVar[Optional[str]] = None
    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("tool_name", "email")

    id: Any
    tool_name: str
    description: str = ""
    category: RequestCategory = RequestCategory.PRODUCTIVITY
    email: str = ""
    submitted_at: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ToolRequest":
        try:
            category = RequestCategory.parse(row.get("category"))
        except ValidationError:
            # rows written by older forms may carry free-text categories
            category = RequestCategory.PRODUCTIVITY
        return cls(
            id=row.get("id"),
            tool_name=_text(row.get("tool_name", row.get("toolName"))),
            description=_text(row.get("description")),
            category=category,
            email=_text(row.get("email")),
            submitted_at=_text(row.get("submitted_at", row.get("submittedAt"))),
        )

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], record_id: Any, now: str) -> "ToolRequest":
        request = cls(
            id=record_id,
            tool_name=_text(fields.get("tool_name")).strip(),
            description=_text(fields.get("description")).strip(),
            category=RequestCategory.parse(fields.get("category")),
            email=_text(fields.get("email")).strip(),
            submitted_at=now,
        )
        request.validate()
        return request

    def merge(self, fields: Mapping[str, Any]) -> "ToolRequest":
        raise ValidationError("Tool requests cannot be edited")

    def validate(self) -> None:
        if not EMAIL_PATTERN.match(self.email):
            raise ValidationError("Enter a valid email.", field="email")

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "description": self.description,
            "category": self.category.value,
            "email": self.email,
            "submitted_at": self.submitted_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "toolName": self.tool_name,
            "description": self.description,
            "category": self.category.value,
            "email": self.email,
            "submittedAt": self.submitted_at,
        }


@dataclass(frozen=True)
class WaitlistEntry:
    """One email on the launch waitlist"""

    TABLE: ClassVar[str] = "waitlist"
    ORDER_COLUMN: ClassVar[str] = "joined_at"
    DESCENDING: ClassVar[bool] = True
    MUTABLE: ClassVar[bool] = False
    LOCAL_IDS: ClassVar[bool] = False
    UNIQUE_FIELD: ClassVar[Optional[str]] = "email"
    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("email",)

    id: Any
    email: str
    joined_at: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "WaitlistEntry":
        return cls(
            id=row.get("id"),
            email=_text(row.get("email")),
            joined_at=_text(row.get("joined_at", row.get("joinedAt"))),
        )

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], record_id: Any, now: str) -> "WaitlistEntry":
        entry = cls(id=record_id, email=_text(fields.get("email")).strip(), joined_at=now)
        entry.validate()
        return entry

    def merge(self, fields: Mapping[str, Any]) -> "WaitlistEntry":
        raise ValidationError("Waitlist entries cannot be edited")

    def validate(self) -> None:
        if not EMAIL_PATTERN.match(self.email):
            raise ValidationError("Enter a valid email.", field="email")

    def to_row(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "joined_at": self.joined_at}

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "joinedAt": self.joined_at}


def default_tools(now: Optional[str] = None):
    """Seed set written once when the tools table is found empty"""
    created_at = now or utc_now_iso()
    return [
        Tool(
            id=1,
            name="AI Resume Builder",
            description="Get a professional resume in 10 minutes via chat",
            status=ToolStatus.LIVE,
            icon="📄",
            buttons=(ToolButton("WhatsApp", "#"), ToolButton("Telegram", "#")),
            created_at=created_at,
        ),
        Tool(
            id=2,
            name="AI Logo Maker",
            description="Create stunning brand assets in seconds",
            status=ToolStatus.COMING_SOON,
            icon="🎨",
            buttons=(ToolButton("Notify Me", ""),),
            launch_days="15 Days",
            created_at=created_at,
        ),
        Tool(
            id=3,
            name="AI Email Writer",
            description="Perfect business emails instantly",
            status=ToolStatus.COMING_SOON,
            icon="✉️",
            buttons=(ToolButton("Notify Me", ""),),
            launch_days="30 Days",
            created_at=created_at,
        ),
    ]
