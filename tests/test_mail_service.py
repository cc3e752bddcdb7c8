"""Tests for the aggregation service: routing, fallback, health and stats."""

import threading
import time

import pytest
import requests
import responses

from mail_service import SERVICE_PROVIDER, MailService
from models import (
    ChannelCapabilities,
    ChannelError,
    ChannelErrorType,
    ChannelStatus,
    CreateEmailRequest,
    EmailListQuery,
)
from registry import ProviderRegistry
from TempMailServices.MailTM import MailTM

from .conftest import fake_provider_class, make_config, make_message, make_registry


@pytest.fixture
def service():
    registry = make_registry({
        "alpha": (["alpha.test"], 10),
        "beta": (["beta.test", "shared.test"], 20),
        "gamma": (["gamma.test", "shared.test"], 30),
    })
    return MailService(registry)


def adapter(service, name):
    return service.registry.get(name)


class TestCreateEmail:
    def test_highest_priority_provider_is_used(self, service):
        result = service.create_email()

        assert result.success is True
        assert result.data.provider == "alpha"
        assert result.metadata.provider == "alpha"

    def test_explicit_provider(self, service):
        result = service.create_email({"provider": "gamma", "prefix": "zed"})

        assert result.data.address == "zed@gamma.test"
        assert adapter(service, "alpha").create_calls == 0

    def test_unknown_provider(self, service):
        result = service.create_email(CreateEmailRequest(provider="nope"))

        assert result.success is False
        assert result.error.type == ChannelErrorType.CONFIGURATION_ERROR
        assert result.error.retryable is False

    def test_falls_back_on_retryable_failure(self, service):
        service.registry.initialize()
        adapter(service, "alpha").create_error = requests.exceptions.ConnectionError("down")

        result = service.create_email()

        assert result.success is True
        assert result.data.provider == "beta"
        assert adapter(service, "alpha").get_stats().failed_requests == 1

    def test_stops_on_non_retryable_failure(self, service):
        service.registry.initialize()
        adapter(service, "alpha").create_error = ChannelError(ChannelErrorType.AUTHENTICATION_ERROR, "no token")

        result = service.create_email()

        assert result.success is False
        assert result.error.type == ChannelErrorType.AUTHENTICATION_ERROR
        assert adapter(service, "beta").create_calls == 0

    def test_all_providers_fail(self, service):
        service.registry.initialize()
        for name in ("alpha", "beta", "gamma"):
            adapter(service, name).create_error = requests.exceptions.Timeout(f"{name} timed out")

        result = service.create_email()

        assert result.success is False
        assert result.error.type == ChannelErrorType.NETWORK_ERROR
        assert result.error.message == "gamma timed out"

    def test_providers_issuing_the_domain_go_first(self, service):
        service.registry.initialize()

        result = service.create_email({"domain": "shared.test"})

        assert result.data.provider == "beta"

    def test_no_second_address_after_mailtm_allocated_one(self, mocked):
        base = "https://api.mail.tm"
        mocked.add(responses.GET, f"{base}/domains", json={"hydra:member": [{"domain": "punkproof.com", "isActive": True}]})
        mocked.add(responses.POST, f"{base}/accounts", json={"id": "acc-1"}, status=201)
        mocked.add(responses.POST, f"{base}/token", body=requests.exceptions.ConnectionError("reset by peer"))
        registry = ProviderRegistry(
            configs=[make_config("mailtm", priority=10), make_config("other", priority=20)],
            provider_classes={"mailtm": MailTM, "other": fake_provider_class("other", ["other.test"])}
        )
        service = MailService(registry)

        result = service.create_email()

        assert result.success is False
        assert result.error.type == ChannelErrorType.AUTHENTICATION_ERROR
        assert result.error.channel_name == "mailtm"
        assert adapter(service, "other").create_calls == 0

    def test_capability_is_checked_before_the_call(self):
        no_create = fake_provider_class(
            "readonly",
            ["readonly.test"],
            capabilities=ChannelCapabilities(create_email=False)
        )
        registry = ProviderRegistry(configs=[make_config("readonly")], provider_classes={"readonly": no_create})
        service = MailService(registry)

        result = service.create_email({"provider": "readonly"})

        assert result.error.type == ChannelErrorType.CONFIGURATION_ERROR
        assert adapter(service, "readonly").create_calls == 0


class TestRouting:
    def test_inbox_is_routed_by_domain(self, service):
        service.registry.initialize()
        adapter(service, "gamma").inbox = [make_message("1", provider="gamma")]

        result = service.get_emails({"address": "someone@Gamma.test"})

        assert result.success is True
        assert [m.id for m in result.data] == ["1"]
        assert adapter(service, "gamma").fetch_calls == 1

    def test_unsupported_domain_never_reaches_an_adapter(self, service):
        service.registry.initialize()

        result = service.get_emails(EmailListQuery(address="someone@gmail.com"))

        assert result.error.type == ChannelErrorType.API_ERROR
        assert result.error.retryable is False
        assert "Unsupported domain" in result.error.message
        assert result.metadata.provider == SERVICE_PROVIDER
        assert all(p.fetch_calls == 0 for p in service.registry.providers())
        assert all(p.get_stats().total_requests == 0 for p in service.registry.providers())

    def test_explicit_provider_overrides_domain(self, service):
        service.registry.initialize()

        service.get_emails({"address": "someone@gmail.com", "provider": "beta"})

        assert adapter(service, "beta").fetch_calls == 1

    def test_content(self, service):
        service.registry.initialize()
        adapter(service, "alpha").inbox = [make_message("7", provider="alpha")]

        result = service.get_email_content("user@alpha.test", "7")

        assert result.data.subject == "Subject 7"

    def test_missing_arguments(self, service):
        assert service.get_email_content("", "1").error.type == ChannelErrorType.API_ERROR
        assert service.get_emails({"address": ""}).error.type == ChannelErrorType.API_ERROR

    def test_body_without_address(self, service):
        result = service.get_emails({"limit": 5})

        assert result.error.type == ChannelErrorType.API_ERROR
        assert result.error.retryable is False
        assert "address is required" in result.error.message

    def test_malformed_since(self, service):
        result = service.get_emails({"address": "user@alpha.test", "since": "yesterday"})

        assert result.error.type == ChannelErrorType.API_ERROR
        assert result.error.retryable is False
        assert result.metadata.provider == SERVICE_PROVIDER

    def test_caller_query_is_not_modified(self, service):
        query = EmailListQuery(address="user@alpha.test", limit=0)

        result = service.get_emails(query)

        assert result.success is True
        assert query.limit == 0

    def test_verify(self, service):
        assert service.verify_email("x@beta.test").data.provider == "beta"
        assert service.verify_email("x@unknown.test").success is False


class TestInitialization:
    def test_failure_is_reported_then_retried(self):
        attempts = []

        def flaky_initialize(self, level=0):
            attempts.append(1)
            if len(attempts) == 1:
                raise ChannelError(ChannelErrorType.CONFIGURATION_ERROR, "bad config")

        classes = {"flaky": fake_provider_class("flaky", ["flaky.test"], initialize=flaky_initialize)}
        service = MailService(ProviderRegistry(configs=[make_config("flaky")], provider_classes=classes))

        first = service.create_email()
        second = service.create_email()

        assert first.success is False
        assert first.error.type == ChannelErrorType.CONFIGURATION_ERROR
        assert first.error.retryable is True
        assert "please try again" in first.error.message
        assert second.success is True

    def test_unexpected_initialization_error(self):
        def broken_initialize(self, level=0):
            raise RuntimeError("disk full")

        classes = {"broken": fake_provider_class("broken", ["broken.test"], initialize=broken_initialize)}
        service = MailService(ProviderRegistry(configs=[make_config("broken")], provider_classes=classes))

        result = service.get_providers_stats()

        assert result.error.type == ChannelErrorType.UNKNOWN_ERROR


class TestHealthAndStats:
    def test_one_failing_probe_marks_only_its_entry(self, service):
        service.registry.initialize()
        adapter(service, "beta").ping_error = requests.exceptions.ConnectionError("refused")

        result = service.get_providers_health()

        assert result.success is True
        assert set(result.data) == {"alpha", "beta", "gamma"}
        assert result.data["alpha"].status == ChannelStatus.ACTIVE
        assert result.data["beta"].status == ChannelStatus.ERROR
        assert result.data["gamma"].status == ChannelStatus.ACTIVE

    def test_hung_probe_times_out(self):
        release = threading.Event()

        def hanging_ping(self, level=0):
            release.wait(5)
            return True

        classes = {
            "ok": fake_provider_class("ok", ["ok.test"]),
            "hung": fake_provider_class("hung", ["hung.test"], _ping=hanging_ping),
        }
        registry = ProviderRegistry(
            configs=[make_config("ok", timeout=0.05), make_config("hung", timeout=0.05)],
            provider_classes=classes
        )
        service = MailService(registry)

        try:
            result = service.get_providers_health()
        finally:
            release.set()

        assert result.success is True
        assert result.data["ok"].status == ChannelStatus.ACTIVE
        assert result.data["hung"].status == ChannelStatus.ERROR
        assert "timed out" in result.data["hung"].last_error

    def test_hung_probes_share_one_deadline(self):
        release = threading.Event()

        def hanging_ping(self, level=0):
            release.wait(10)
            return True

        names = ("slow1", "slow2", "slow3")
        classes = {name: fake_provider_class(name, [f"{name}.test"], _ping=hanging_ping) for name in names}
        registry = ProviderRegistry(
            configs=[make_config(name, timeout=0.05) for name in names],
            provider_classes=classes
        )
        service = MailService(registry)
        service.registry.initialize()

        start = time.monotonic()
        try:
            result = service.get_providers_health()
        finally:
            release.set()
        elapsed = time.monotonic() - start

        assert all(result.data[name].status == ChannelStatus.ERROR for name in names)
        assert elapsed < 4

    def test_probes_do_not_touch_stats(self, service):
        service.test_connections()

        stats = service.get_providers_stats().data
        assert all(s.total_requests == 0 for s in stats.values())

    def test_stats_after_calls(self, service):
        service.create_email()
        service.get_emails({"address": "user@alpha.test"})
        service.get_emails({"address": "user@unknown.test"})

        stats = service.get_providers_stats().data

        assert stats["alpha"].total_requests == 2
        assert stats["alpha"].successful_requests == 2
        assert stats["beta"].total_requests == 0


class TestWaitForEmail:
    def test_returns_first_message(self, service, monkeypatch):
        service.registry.initialize()
        inbox = adapter(service, "alpha").inbox
        monkeypatch.setattr("mail_service.time.sleep", lambda seconds: inbox.append(make_message("new")))

        result = service.wait_for_email("user@alpha.test", timeout=10, interval=1)

        assert result.success is True
        assert result.data.id == "new"

    def test_timeout(self, service, monkeypatch):
        monkeypatch.setattr("mail_service.time.sleep", lambda seconds: None)

        result = service.wait_for_email("user@alpha.test", timeout=0, interval=1)

        assert result.success is False
        assert result.error.type == ChannelErrorType.API_ERROR
        assert "No email received" in result.error.message

    def test_stops_on_non_retryable_error(self, service):
        result = service.wait_for_email("user@unknown.test", timeout=60, interval=1)

        assert "Unsupported domain" in result.error.message


def test_info(service):
    result = service.get_info()

    info = result.data
    assert info["name"] == "TempMailHub"
    assert [p["name"] for p in info["providers"]] == ["alpha", "beta", "gamma"]
    assert info["providers"][1]["domains"] == ["beta.test", "shared.test"]


def test_envelope_serialization(service):
    body = service.create_email({"prefix": "bob"}).to_dict()

    assert body["success"] is True
    assert body["data"]["address"] == "bob@alpha.test"
    assert body["data"]["accessToken"] == "token"
    assert set(body["metadata"]) == {"provider", "responseTime", "requestId"}

    failure = service.create_email({"provider": "nope"}).to_dict()
    assert failure["success"] is False
    assert failure["error"]["type"] == "CONFIGURATION_ERROR"
    assert "data" not in failure
