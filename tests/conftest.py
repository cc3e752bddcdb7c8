"""
Shared fixtures for the TempMailHub test-suite.

Upstream HTTP is mocked with the responses library; orchestration tests use
in-memory FakeProvider adapters that never touch the network.
"""

import os

# Must be set before config.py is imported
os.environ.setdefault("LOG_ENABLED", "0")
os.environ.setdefault("RETRY_BACKOFF", "0")

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import pytest
import responses

from http_client import HttpClient
from models import (
    ChannelConfiguration,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailContact,
    EmailListQuery,
    EmailMessage,
)
from registry import ProviderRegistry
from TempMailServices.base import BaseMailProvider

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_config(name: str, **overrides) -> ChannelConfiguration:
    values = {"timeout": 5, "retries": 0, "priority": 10}
    values.update(overrides)
    return ChannelConfiguration(name=name, **values)


def make_message(
    message_id: str,
    provider: str = "fake",
    is_read: bool = False,
    minutes: int = 0,
    address: str = "user@fake.test"
) -> EmailMessage:
    return EmailMessage(
        id=message_id,
        sender=EmailContact(email="sender@example.com"),
        recipients=[EmailContact(email=address)],
        subject=f"Subject {message_id}",
        text_content=f"Body {message_id}",
        html_content=f"<p>Body {message_id}</p>",
        received_at=BASE_TIME + timedelta(minutes=minutes),
        is_read=is_read,
        provider=provider,
        size=10
    )


class FakeProvider(BaseMailProvider):
    """In-memory adapter driven by attributes set in tests."""

    name = "fake"
    DOMAINS: Tuple[str, ...] = ("fake.test",)

    def __init__(self, config, client=None):
        super().__init__(config, client)
        self.inbox: List[EmailMessage] = []
        self.create_error: Optional[Exception] = None
        self.inbox_error: Optional[Exception] = None
        self.ping_ok = True
        self.ping_error: Optional[Exception] = None
        self.create_calls = 0
        self.fetch_calls = 0
        self.initialized = False

    @property
    def domains(self):
        return frozenset(self.DOMAINS)

    def initialize(self, level: int = 0) -> None:
        self.initialized = True

    def _create_email(self, request: CreateEmailRequest, level: int = 0) -> CreateEmailResponse:
        self.create_calls += 1
        if self.create_error:
            raise self.create_error
        username = request.prefix or "user"
        domain = self.DOMAINS[0]
        return CreateEmailResponse(
            address=f"{username}@{domain}",
            domain=domain,
            username=username,
            provider=self.name,
            access_token="token"
        )

    def _fetch_inbox(self, query: EmailListQuery, level: int = 0) -> List[EmailMessage]:
        self.fetch_calls += 1
        if self.inbox_error:
            raise self.inbox_error
        return list(self.inbox)

    def _ping(self, level: int = 0) -> bool:
        if self.ping_error:
            raise self.ping_error
        return self.ping_ok


def fake_provider_class(name: str, domains: Iterable[str], **attrs):
    """Build a FakeProvider subclass with its own name and domain set."""
    body = {"name": name, "DOMAINS": tuple(domains)}
    body.update(attrs)
    return type(f"Fake_{name}", (FakeProvider,), body)


def make_registry(specs: Dict[str, Tuple[Iterable[str], int]], **config_overrides) -> ProviderRegistry:
    """
    Registry over fake providers.

    Args:
        specs: {name: (domains, priority)}.
    """
    classes = {name: fake_provider_class(name, domains) for name, (domains, _) in specs.items()}
    configs = [make_config(name, priority=priority, **config_overrides) for name, (_, priority) in specs.items()]
    return ProviderRegistry(configs=configs, provider_classes=classes)


@pytest.fixture
def client():
    return HttpClient(backoff=0)


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def fake_provider():
    return FakeProvider(make_config("fake"))
