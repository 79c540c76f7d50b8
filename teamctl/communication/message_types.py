"""
Message types for teammate mailboxes.

A mailbox holds ``InboxMessage`` records. The ``text`` of a record is opaque,
but teammates embed JSON encoded structured messages in it (shutdown
handshakes, plan/permission approvals, idle notices). ``parse_structured``
turns such a payload into one of the ``StructuredMessage`` variants and
falls back to ``PlainText`` for anything it does not recognise.

On disk every field uses camelCase (``requestId``, ``toolName``) and the
sender is stored under ``from``.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from dataclasses import dataclass, field, fields, MISSING
from typing import Any, ClassVar, Dict, List, Optional, Type, Union, get_args, get_origin


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _camel(name: str) -> str:
    if name == "sender":
        return "from"
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _matches(value: Any, annotation: Any) -> bool:
    """Shallow type check of a decoded JSON value against a field annotation."""
    if annotation is Any:
        return True
    origin = get_origin(annotation)
    if origin is Union:
        return any(_matches(value, arg) for arg in get_args(annotation))
    if origin in (list, List):
        if not isinstance(value, list):
            return False
        (item_type,) = get_args(annotation) or (Any,)
        return all(_matches(item, item_type) for item in value)
    if annotation is type(None):
        return value is None
    if annotation is bool:
        return isinstance(value, bool)
    return isinstance(value, annotation)


@dataclass
class InboxMessage:
    """One record in a mailbox file."""
    sender: str
    text: str
    timestamp: str = field(default_factory=utc_now_iso)
    color: Optional[str] = None
    read: bool = False
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "text": self.text,
            "timestamp": self.timestamp,
            "color": self.color,
            "read": self.read,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InboxMessage":
        if not isinstance(data, dict):
            raise ValueError("inbox message must be an object")
        for key, expected in (("from", str), ("text", str), ("timestamp", str), ("read", bool)):
            if not _matches(data.get(key), expected):
                raise ValueError(f"inbox message field '{key}' is missing or not a {expected.__name__}")
        for key in ("color", "summary"):
            if not _matches(data.get(key), Optional[str]):
                raise ValueError(f"inbox message field '{key}' must be a string or null")
        return cls(
            sender=data["from"],
            text=data["text"],
            timestamp=data["timestamp"],
            color=data.get("color"),
            read=data["read"],
            summary=data.get("summary"),
        )


class MessageType(Enum):
    """Tags of the structured messages exchanged through mailboxes."""
    SHUTDOWN_REQUEST = "shutdown_request"
    SHUTDOWN_APPROVED = "shutdown_approved"
    IDLE_NOTIFICATION = "idle_notification"
    PLAN_APPROVAL_REQUEST = "plan_approval_request"
    PLAN_APPROVAL_RESPONSE = "plan_approval_response"
    PERMISSION_REQUEST = "permission_request"
    PERMISSION_RESPONSE = "permission_response"
    PLAIN_TEXT = "plain_text"


class StructuredMessage:
    """Base for the structured message variants.

    Subclasses are dataclasses declaring ``TYPE``. Serialization is driven by
    the dataclass fields: snake_case attribute names map to camelCase keys.
    """
    TYPE: ClassVar[MessageType]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.TYPE.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None and f.default is None:
                continue
            data[_camel(f.name)] = value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StructuredMessage":
        kwargs = {}
        for f in fields(cls):
            key = _camel(f.name)
            required = f.default is MISSING and f.default_factory is MISSING
            if key not in data:
                if required:
                    raise ValueError(f"{cls.TYPE.value}: missing field '{key}'")
                continue
            value = data[key]
            if not _matches(value, f.type):
                raise ValueError(f"{cls.TYPE.value}: field '{key}' has wrong type")
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass
class ShutdownRequest(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.SHUTDOWN_REQUEST
    request_id: str
    sender: str
    timestamp: str
    reason: Optional[str] = None


@dataclass
class ShutdownApproved(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.SHUTDOWN_APPROVED
    request_id: str
    sender: str
    timestamp: str
    pane_id: Optional[str] = None
    backend_type: Optional[str] = None


@dataclass
class IdleNotification(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.IDLE_NOTIFICATION
    sender: str
    timestamp: str
    idle_reason: str


@dataclass
class PlanApprovalRequest(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.PLAN_APPROVAL_REQUEST
    request_id: str
    sender: str
    timestamp: str
    plan_content: Optional[str] = None


@dataclass
class PlanApprovalResponse(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.PLAN_APPROVAL_RESPONSE
    request_id: str
    sender: str
    approved: bool
    timestamp: str
    feedback: Optional[str] = None


@dataclass
class PermissionRequest(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.PERMISSION_REQUEST
    request_id: str
    sender: str
    tool_name: str
    description: str
    timestamp: str
    tool_use_id: Optional[str] = None
    input: Optional[Any] = None
    permission_suggestions: Optional[List[str]] = None


@dataclass
class PermissionResponse(StructuredMessage):
    TYPE: ClassVar[MessageType] = MessageType.PERMISSION_RESPONSE
    request_id: str
    sender: str
    approved: bool
    timestamp: str


@dataclass
class PlainText(StructuredMessage):
    """Fallback for payloads that are not a known structured message."""
    TYPE: ClassVar[MessageType] = MessageType.PLAIN_TEXT
    text: str


MESSAGE_CLASSES: Dict[str, Type[StructuredMessage]] = {
    cls.TYPE.value: cls
    for cls in (
        ShutdownRequest,
        ShutdownApproved,
        IdleNotification,
        PlanApprovalRequest,
        PlanApprovalResponse,
        PermissionRequest,
        PermissionResponse,
        PlainText,
    )
}

APPROVAL_REQUESTS = (PlanApprovalRequest, PermissionRequest)


def parse_structured(text: str) -> StructuredMessage:
    """Decode a mailbox payload, falling back to PlainText."""
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return PlainText(text=text)

    if not isinstance(value, dict) or not isinstance(value.get("type"), str):
        return PlainText(text=text)

    cls = MESSAGE_CLASSES.get(value["type"])
    if cls is None:
        return PlainText(text=text)
    try:
        return cls.from_dict(value)
    except (TypeError, ValueError):
        return PlainText(text=text)


def build_approval_response(request: StructuredMessage, approved: bool,
                            sender: str = "controller") -> StructuredMessage:
    """Response variant answering a plan or permission request.

    The request's timestamp is echoed back so the teammate can correlate.
    """
    if isinstance(request, PlanApprovalRequest):
        return PlanApprovalResponse(request_id=request.request_id, sender=sender,
                                    approved=approved, timestamp=request.timestamp)
    if isinstance(request, PermissionRequest):
        return PermissionResponse(request_id=request.request_id, sender=sender,
                                  approved=approved, timestamp=request.timestamp)
    raise TypeError(f"not an approval request: {type(request).__name__}")


@dataclass
class PollEvent:
    """A drained mailbox record paired with its decoded payload."""
    raw: InboxMessage
    parsed: StructuredMessage
