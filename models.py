"""
Canonical data model shared by every temporary email provider.

Adapters translate their upstream payloads into these types, and the
aggregation service wraps them in a ChannelResponse envelope. Attributes use
snake_case; to_dict() produces the camelCase shape served to API clients.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChannelStatus(str, Enum):
    """Health status of a provider."""
    ACTIVE = "active"
    DEGRADED = "degraded"
    ERROR = "error"
    DISABLED = "disabled"


class ChannelErrorType(str, Enum):
    """Kinds of failure a provider call can end with."""
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


NON_RETRYABLE_ERRORS = (
    ChannelErrorType.AUTHENTICATION_ERROR,
    ChannelErrorType.CONFIGURATION_ERROR,
)


class ChannelError(Exception):
    """
    Normalized provider failure.

    Attributes:
        type: Error kind.
        message: Human readable description.
        channel_name: Provider that raised it.
        status_code: Upstream HTTP status, if any.
        retryable: Whether the caller may retry the same call.
        timestamp: When the error was created.
    """

    def __init__(
        self,
        error_type: ChannelErrorType,
        message: str,
        channel_name: str = "",
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None
    ):
        super().__init__(message)
        self.type = error_type
        self.message = message
        self.channel_name = channel_name
        self.status_code = status_code
        self.retryable = error_type not in NON_RETRYABLE_ERRORS if retryable is None else retryable
        self.timestamp = _now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "channelName": self.channel_name,
            "statusCode": self.status_code,
            "retryable": self.retryable,
            "timestamp": _iso(self.timestamp),
        }

    def __repr__(self) -> str:
        return f"ChannelError({self.type.value}, {self.message!r}, channel={self.channel_name!r})"


# ==============================================================================
# Email types
# ==============================================================================

@dataclass(frozen=True)
class EmailContact:
    email: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"email": self.email}
        if self.name:
            data["name"] = self.name
        return data


@dataclass
class EmailAddress:
    address: str
    domain: str
    username: str
    provider: str
    created_at: datetime = field(default_factory=_now)
    is_active: bool = True
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.expires_at:
            return False
        return (now or _now()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "domain": self.domain,
            "username": self.username,
            "provider": self.provider,
            "createdAt": _iso(self.created_at),
            "expiresAt": _iso(self.expires_at),
            "isActive": self.is_active and not self.is_expired(),
        }


@dataclass
class CreateEmailRequest:
    domain: Optional[str] = None
    prefix: Optional[str] = None
    provider: Optional[str] = None
    expiration_minutes: Optional[int] = None

    @classmethod
    def from_dict(cls, body: Optional[Dict[str, Any]]) -> "CreateEmailRequest":
        body = body or {}
        expiration = body.get("expirationMinutes", body.get("expiration_minutes"))
        return cls(
            domain=body.get("domain") or None,
            prefix=body.get("prefix") or None,
            provider=body.get("provider") or None,
            expiration_minutes=int(expiration) if expiration else None
        )


@dataclass
class CreateEmailResponse:
    address: str
    domain: str
    username: str
    provider: str
    expires_at: Optional[datetime] = None
    access_token: Optional[str] = None
    recovery_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "address": self.address,
            "domain": self.domain,
            "username": self.username,
            "provider": self.provider,
            "expiresAt": _iso(self.expires_at),
        }
        if self.access_token:
            data["accessToken"] = self.access_token
        if self.recovery_key:
            data["recoveryKey"] = self.recovery_key
        return data


@dataclass
class EmailListQuery:
    address: str
    provider: Optional[str] = None
    access_token: Optional[str] = None
    limit: int = 20
    offset: int = 0
    unread_only: bool = False
    since: Optional[datetime] = None

    @classmethod
    def from_dict(cls, body: Optional[Dict[str, Any]]) -> "EmailListQuery":
        body = body or {}
        since = body.get("since")
        try:
            if isinstance(since, str):
                since = datetime.fromisoformat(since.replace("Z", "+00:00"))
            limit = int(body.get("limit") or 20)
            offset = int(body.get("offset") or 0)
        except (TypeError, ValueError) as e:
            raise ChannelError(ChannelErrorType.API_ERROR, f"Invalid query: {e}", retryable=False) from e
        return cls(
            address=body.get("address") or "",
            provider=body.get("provider") or None,
            access_token=body.get("accessToken") or body.get("access_token") or None,
            limit=limit,
            offset=offset,
            unread_only=body.get("unreadOnly", body.get("unread_only")) is True,
            since=since
        )


@dataclass(frozen=True)
class EmailMessage:
    id: str
    sender: EmailContact
    recipients: List[EmailContact]
    subject: str
    text_content: str
    html_content: str
    received_at: datetime
    is_read: bool
    provider: str
    size: int = 0
    attachments: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender.to_dict(),
            "to": [r.to_dict() for r in self.recipients],
            "subject": self.subject,
            "textContent": self.text_content,
            "htmlContent": self.html_content,
            "receivedAt": _iso(self.received_at),
            "isRead": self.is_read,
            "provider": self.provider,
            "size": self.size,
            "attachments": list(self.attachments),
        }


# ==============================================================================
# Channel types
# ==============================================================================

@dataclass(frozen=True)
class ChannelCapabilities:
    create_email: bool = True
    list_emails: bool = True
    get_email_content: bool = True
    custom_domains: bool = False
    custom_prefix: bool = False
    email_expiration: bool = False
    real_time_updates: bool = False
    attachment_support: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "createEmail": self.create_email,
            "listEmails": self.list_emails,
            "getEmailContent": self.get_email_content,
            "customDomains": self.custom_domains,
            "customPrefix": self.custom_prefix,
            "emailExpiration": self.email_expiration,
            "realTimeUpdates": self.real_time_updates,
            "attachmentSupport": self.attachment_support,
        }


@dataclass
class ChannelConfiguration:
    name: str
    enabled: bool = True
    priority: int = 100
    timeout: float = 15.0
    retries: int = 2
    credentials: Dict[str, str] = field(default_factory=dict)


@dataclass
class ChannelStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    requests_today: int = 0
    errors_today: int = 0
    average_response_time: float = 0.0
    last_request_time: Optional[datetime] = None

    def copy(self) -> "ChannelStats":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "requestsToday": self.requests_today,
            "errorsToday": self.errors_today,
            "averageResponseTime": round(self.average_response_time, 2),
            "lastRequestTime": _iso(self.last_request_time),
        }


@dataclass
class ChannelHealth:
    status: ChannelStatus
    last_checked: datetime = field(default_factory=_now)
    response_time: float = 0.0
    error_count: int = 0
    success_rate: float = 0.0
    uptime: float = 100.0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "lastChecked": _iso(self.last_checked),
            "responseTime": round(self.response_time, 2),
            "errorCount": self.error_count,
            "successRate": round(self.success_rate, 2),
            "uptime": round(self.uptime, 2),
            "lastError": self.last_error,
        }


# ==============================================================================
# Response envelope
# ==============================================================================

@dataclass
class ResponseMetadata:
    provider: str
    response_time: float = 0.0
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "responseTime": round(self.response_time, 2),
            "requestId": self.request_id,
        }


@dataclass
class ChannelResponse(Generic[T]):
    success: bool
    metadata: ResponseMetadata
    data: Optional[T] = None
    error: Optional[ChannelError] = None

    @classmethod
    def ok(cls, data: T, provider: str, response_time: float = 0.0) -> "ChannelResponse[T]":
        return cls(success=True, data=data, metadata=ResponseMetadata(provider, response_time))

    @classmethod
    def fail(cls, error: ChannelError, provider: str, response_time: float = 0.0) -> "ChannelResponse[T]":
        return cls(success=False, error=error, metadata=ResponseMetadata(provider, response_time))

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success}
        if self.success:
            body["data"] = _serialize(self.data)
        else:
            body["error"] = self.error.to_dict() if self.error else None
        body["metadata"] = self.metadata.to_dict()
        return body


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return value
