"""
Provider contract shared by every temporary email service adapter.

An adapter subclasses BaseMailProvider, declares its name, capabilities and
issuable domains, and implements the upstream-specific hooks (_create_email,
_fetch_inbox, _ping, optionally _fetch_message and _verify_email). The base
class supplies the public operations: stats accounting, error normalization,
filtering/pagination and the response envelope.
"""

import abc
import threading
import time
from datetime import date, datetime, timezone
from typing import Callable, FrozenSet, List, Optional, TypeVar

import requests
from fake_useragent import UserAgent

from config import HEALTH_DEGRADED_THRESHOLD, HEALTH_MIN_SAMPLE
from http_client import HttpClient, HttpResponse, http_client
from models import (
    ChannelCapabilities,
    ChannelConfiguration,
    ChannelError,
    ChannelErrorType,
    ChannelHealth,
    ChannelResponse,
    ChannelStats,
    ChannelStatus,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailAddress,
    EmailListQuery,
    EmailMessage,
)
from utils import format_error, logger, split_address

T = TypeVar("T")


class StatsTracker:
    """
    Thread-safe request counters owned by one adapter.

    Counters are never reset; the "today" counters roll over when the local
    date changes.
    """

    def __init__(self):
        self._stats = ChannelStats()
        self._lock = threading.Lock()
        self._day = date.today()
        self.last_error: Optional[str] = None

    def _roll_day(self) -> None:
        today = date.today()
        if today != self._day:
            self._day = today
            self._stats.requests_today = 0
            self._stats.errors_today = 0

    def record_request(self) -> None:
        with self._lock:
            self._roll_day()
            self._stats.total_requests += 1
            self._stats.requests_today += 1
            self._stats.last_request_time = datetime.now(timezone.utc)

    def record_success(self, response_time: float) -> None:
        with self._lock:
            self._stats.successful_requests += 1
            n = self._stats.successful_requests
            avg = self._stats.average_response_time
            self._stats.average_response_time = avg + (response_time - avg) / n

    def record_failure(self, message: str) -> None:
        with self._lock:
            self._roll_day()
            self._stats.failed_requests += 1
            self._stats.errors_today += 1
            self.last_error = message

    def snapshot(self) -> ChannelStats:
        with self._lock:
            self._roll_day()
            return self._stats.copy()


class BaseMailProvider(abc.ABC):
    """
    Base class for temporary email provider adapters.

    Attributes:
        name: Provider identifier used for routing and reporting.
        capabilities: Static feature declaration.
        BASE_URL: Upstream base URL.
    """

    name: str = ""
    capabilities: ChannelCapabilities = ChannelCapabilities()
    BASE_URL: str = ""

    def __init__(
        self,
        config: ChannelConfiguration,
        client: Optional[HttpClient] = None
    ):
        """
        Initialize the adapter.

        Args:
            config: Timeout, retries and credentials for this provider.
            client: Transport helper, defaults to the shared one.
        """
        self.config = config
        self.client = client or http_client
        self.stats = StatsTracker()
        self.ua = UserAgent()
        self.session = self._init_session()

    def _init_session(self) -> requests.Session:
        """Create the HTTP session used for every upstream call."""
        session = requests.Session()
        session.headers.update({
            'User-Agent': self.ua.random,
            'Accept': 'application/json, text/plain, */*',
            'Accept-Language': 'en-US,en;q=0.9',
        })
        return session

    def initialize(self, level: int = 0) -> None:
        """Warm up caches. Must not raise on upstream failure."""
        logger(f"✅ {self.name} provider ready", level=level)

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            try:
                self.session.close()
            except Exception as e:
                logger(f"⚠ Failed to close {self.name} session: {format_error(e)}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name} enabled={self.config.enabled}>"

    # ==========================================================================
    # Domains
    # ==========================================================================

    @property
    def domains(self) -> FrozenSet[str]:
        """Domains this provider can issue addresses on."""
        return frozenset()

    def supports_domain(self, domain: str) -> bool:
        """Cache-only check, never touches the network."""
        return bool(domain) and domain.lower() in self.domains

    # ==========================================================================
    # Upstream hooks
    # ==========================================================================

    @abc.abstractmethod
    def _create_email(self, request: CreateEmailRequest, level: int = 0) -> CreateEmailResponse:
        """Allocate a new address upstream."""
        raise NotImplementedError

    @abc.abstractmethod
    def _fetch_inbox(self, query: EmailListQuery, level: int = 0) -> List[EmailMessage]:
        """Return the whole upstream inbox, mapped to the canonical model."""
        raise NotImplementedError

    @abc.abstractmethod
    def _ping(self, level: int = 0) -> bool:
        """Cheapest upstream call proving the service answers."""
        raise NotImplementedError

    def _fetch_message(
        self,
        address: str,
        email_id: str,
        access_token: Optional[str] = None,
        level: int = 0
    ) -> EmailMessage:
        """Look a message up in a fresh inbox listing."""
        inbox = self._fetch_inbox(EmailListQuery(address=address, access_token=access_token), level=level)
        for message in inbox:
            if message.id == email_id:
                return message
        raise self.not_found(email_id)

    def _verify_email(self, address: str, level: int = 0) -> EmailAddress:
        username, domain = split_address(address)
        if not username or not domain:
            raise self.error(ChannelErrorType.API_ERROR, f"Invalid email address: {address}", retryable=False)
        if not self.supports_domain(domain):
            raise self.error(ChannelErrorType.API_ERROR, f"Domain {domain} is not supported", retryable=False)
        return EmailAddress(address=address, domain=domain, username=username, provider=self.name)

    # ==========================================================================
    # Contract operations
    # ==========================================================================

    def create_email(self, request: Optional[CreateEmailRequest] = None) -> ChannelResponse[CreateEmailResponse]:
        request = request or CreateEmailRequest()
        return self._execute("create_email", lambda: self._create_email(request, level=1))

    def get_emails(self, query: EmailListQuery) -> ChannelResponse[List[EmailMessage]]:
        return self._execute("get_emails", lambda: self._list(query))

    def get_email_content(
        self,
        address: str,
        email_id: str,
        access_token: Optional[str] = None
    ) -> ChannelResponse[EmailMessage]:
        return self._execute(
            "get_email_content",
            lambda: self._fetch_message(address, str(email_id), access_token, level=1)
        )

    def verify_email(self, address: str) -> ChannelResponse[EmailAddress]:
        return self._execute("verify_email", lambda: self._verify_email(address, level=1))

    def test_connection(self) -> ChannelResponse[bool]:
        """Probe the upstream. Not counted in stats."""
        start = time.monotonic()
        try:
            reachable = self._ping(level=1)
            elapsed = (time.monotonic() - start) * 1000
            if not reachable:
                error = self.error(ChannelErrorType.API_ERROR, f"{self.name} did not answer the connection test")
                return ChannelResponse.fail(error, self.name, elapsed)
            return ChannelResponse.ok(True, self.name, elapsed)
        except Exception as e:
            elapsed = (time.monotonic() - start) * 1000
            return ChannelResponse.fail(self._normalize(e), self.name, elapsed)

    def get_health(self) -> ChannelHealth:
        probe = self.test_connection()
        stats = self.stats.snapshot()

        success_rate = 0.0
        uptime = 100.0
        if stats.total_requests > 0:
            success_rate = stats.successful_requests / stats.total_requests * 100
            uptime = success_rate

        if not probe.success:
            status = ChannelStatus.ERROR
        elif stats.total_requests >= HEALTH_MIN_SAMPLE and success_rate < HEALTH_DEGRADED_THRESHOLD:
            status = ChannelStatus.DEGRADED
        else:
            status = ChannelStatus.ACTIVE

        return ChannelHealth(
            status=status,
            response_time=probe.metadata.response_time,
            error_count=stats.failed_requests,
            success_rate=success_rate,
            uptime=uptime,
            last_error=probe.error.message if probe.error else self.stats.last_error
        )

    def get_stats(self) -> ChannelStats:
        return self.stats.snapshot()

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _list(self, query: EmailListQuery) -> List[EmailMessage]:
        messages = self._fetch_inbox(query, level=1)
        return self.paginate(self.apply_filters(messages, query), query)

    @staticmethod
    def apply_filters(messages: List[EmailMessage], query: EmailListQuery) -> List[EmailMessage]:
        if query.unread_only:
            messages = [m for m in messages if not m.is_read]
        if query.since:
            since = query.since if query.since.tzinfo else query.since.replace(tzinfo=timezone.utc)
            messages = [m for m in messages if m.received_at >= since]
        return messages

    @staticmethod
    def paginate(messages: List[EmailMessage], query: EmailListQuery) -> List[EmailMessage]:
        limit = query.limit if query.limit and query.limit > 0 else 20
        offset = max(query.offset or 0, 0)
        return messages[offset:offset + limit]

    def _execute(self, operation: str, call: Callable[[], T]) -> ChannelResponse[T]:
        """Run a contract operation with stats accounting and error normalization."""
        start = time.monotonic()
        self.stats.record_request()

        try:
            result = call()
        except Exception as e:
            elapsed = (time.monotonic() - start) * 1000
            error = self._normalize(e)
            self.stats.record_failure(error.message)
            logger(f"✗ {self.name}.{operation} failed [{error.type.value}]: {error.message}", level=1)
            return ChannelResponse.fail(error, self.name, elapsed)

        elapsed = (time.monotonic() - start) * 1000
        self.stats.record_success(elapsed)
        return ChannelResponse.ok(result, self.name, elapsed)

    def _normalize(self, e: Exception) -> ChannelError:
        if isinstance(e, ChannelError):
            if not e.channel_name:
                e.channel_name = self.name
            return e
        if isinstance(e, requests.exceptions.RequestException):
            return self.error(ChannelErrorType.NETWORK_ERROR, format_error(e))
        return self.error(ChannelErrorType.UNKNOWN_ERROR, format_error(e))

    def error(
        self,
        error_type: ChannelErrorType,
        message: str,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None
    ) -> ChannelError:
        return ChannelError(error_type, message, self.name, status_code, retryable)

    def not_found(self, email_id: str) -> ChannelError:
        return self.error(ChannelErrorType.API_ERROR, f"Email with ID {email_id} not found", 404, retryable=False)

    def request(self, method: str, url: str, level: int = 0, **kwargs) -> HttpResponse:
        """Send through the transport helper with this provider's timeout and retries."""
        return self.client.request(
            method,
            url,
            timeout=self.config.timeout,
            retries=self.config.retries,
            session=self.session,
            level=level,
            **kwargs
        )

    def check_response(self, response: HttpResponse) -> HttpResponse:
        """Classify a non-2xx upstream response."""
        if response.ok:
            return response
        message = f"{self.name} API returned {response.status}: {response.reason or response.text[:100]}"
        if response.status == 401:
            raise self.error(ChannelErrorType.AUTHENTICATION_ERROR, message, response.status)
        if response.status == 404:
            raise self.error(ChannelErrorType.API_ERROR, message, response.status, retryable=False)
        raise self.error(ChannelErrorType.API_ERROR, message, response.status)
