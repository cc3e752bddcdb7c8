"""
Mail aggregation service.

Resolves which provider handles a call (explicit name, domain inference, or
priority order for address creation), dispatches to the adapter and returns
the uniform ChannelResponse envelope. No exception escapes this layer.
"""

import time
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from config import DEFAULT_PAGE_LIMIT, SERVICE_NAME, SERVICE_VERSION
from models import (
    ChannelError,
    ChannelErrorType,
    ChannelHealth,
    ChannelResponse,
    ChannelStatus,
    CreateEmailRequest,
    CreateEmailResponse,
    EmailAddress,
    EmailListQuery,
    EmailMessage,
)
from registry import ProviderRegistry
from TempMailServices import BaseMailProvider
from utils import format_error, logger, split_address

T = TypeVar("T")

SERVICE_PROVIDER = "tempmailhub"

# Extra seconds granted to a health probe on top of its transport budget
PROBE_GRACE = 2.0


class MailService:
    """
    Orchestrates provider adapters behind one API.

    Attributes:
        registry: Provider registry, initialized lazily on first call.
    """

    def __init__(self, registry: Optional[ProviderRegistry] = None):
        self.registry = registry or ProviderRegistry()

    # ==========================================================================
    # Resolution
    # ==========================================================================

    def _ensure_ready(self) -> None:
        try:
            self.registry.initialize()
        except ChannelError as e:
            raise ChannelError(
                ChannelErrorType.CONFIGURATION_ERROR,
                f"Service initialization failed, please try again: {e.message}",
                SERVICE_PROVIDER,
                retryable=True
            )
        except Exception as e:
            raise ChannelError(
                ChannelErrorType.UNKNOWN_ERROR,
                f"Service initialization failed, please try again: {format_error(e)}",
                SERVICE_PROVIDER
            )

    def _by_name(self, name: str) -> BaseMailProvider:
        provider = self.registry.get(name)
        if provider is None:
            raise ChannelError(
                ChannelErrorType.CONFIGURATION_ERROR,
                f"Provider '{name}' is not available",
                name
            )
        return provider

    def _by_address(self, address: str, provider_name: Optional[str] = None) -> BaseMailProvider:
        if provider_name:
            return self._by_name(provider_name)

        _, domain = split_address(address)
        provider = self.registry.find_by_domain(domain)
        if provider is None:
            raise ChannelError(
                ChannelErrorType.API_ERROR,
                f"Unsupported domain: {domain or address}",
                SERVICE_PROVIDER,
                retryable=False
            )
        return provider

    @staticmethod
    def _require(provider: BaseMailProvider, capability: str) -> None:
        if not getattr(provider.capabilities, capability):
            raise ChannelError(
                ChannelErrorType.CONFIGURATION_ERROR,
                f"Provider '{provider.name}' does not support {capability}",
                provider.name
            )

    def _guard(self, operation: str, call: Callable[[], ChannelResponse[T]]) -> ChannelResponse[T]:
        """Run an operation, turning any escaping exception into an envelope."""
        start = time.monotonic()
        try:
            return call()
        except ChannelError as e:
            elapsed = (time.monotonic() - start) * 1000
            logger(f"✗ {operation} rejected [{e.type.value}]: {e.message}", level=1)
            return ChannelResponse.fail(e, e.channel_name or SERVICE_PROVIDER, elapsed)
        except Exception as e:
            elapsed = (time.monotonic() - start) * 1000
            logger(f"✗ {operation} crashed: {format_error(e)}", level=1)
            error = ChannelError(ChannelErrorType.UNKNOWN_ERROR, format_error(e), SERVICE_PROVIDER)
            return ChannelResponse.fail(error, SERVICE_PROVIDER, elapsed)

    # ==========================================================================
    # Mail operations
    # ==========================================================================

    def create_email(
        self,
        request: Union[CreateEmailRequest, Dict[str, Any], None] = None
    ) -> ChannelResponse[CreateEmailResponse]:
        """
        Create a temporary address.

        With an explicit provider only that adapter is used. Otherwise enabled
        adapters are tried in priority order (those able to issue the requested
        domain first) until one succeeds; a non-retryable failure stops the
        walk, since the upstream may already hold the address.

        Args:
            request: CreateEmailRequest or the raw JSON body.

        Returns:
            Envelope with the allocated address.
        """
        def run() -> ChannelResponse[CreateEmailResponse]:
            req = request if isinstance(request, CreateEmailRequest) else CreateEmailRequest.from_dict(request)
            self._ensure_ready()

            if req.provider:
                provider = self._by_name(req.provider)
                self._require(provider, "create_email")
                return provider.create_email(req)

            candidates = self.registry.enabled_for_create()
            if req.domain:
                candidates.sort(key=lambda p: not p.supports_domain(req.domain))
            if not candidates:
                raise ChannelError(ChannelErrorType.CONFIGURATION_ERROR, "No provider can create addresses", SERVICE_PROVIDER)

            result: Optional[ChannelResponse[CreateEmailResponse]] = None
            for provider in candidates:
                logger(f"📮 Creating email with {provider.name}...", level=0)
                result = provider.create_email(req)
                if result.success:
                    return result
                if result.error and not result.error.retryable:
                    break
                logger(f"⚠ {provider.name} failed, trying next provider", level=1)
            return result

        return self._guard("create_email", run)

    def get_emails(
        self,
        query: Union[EmailListQuery, Dict[str, Any]]
    ) -> ChannelResponse[List[EmailMessage]]:
        def run() -> ChannelResponse[List[EmailMessage]]:
            q = query if isinstance(query, EmailListQuery) else EmailListQuery.from_dict(query)
            if not q.address:
                raise ChannelError(ChannelErrorType.API_ERROR, "Email address is required", SERVICE_PROVIDER, retryable=False)
            if not q.limit:
                q = replace(q, limit=DEFAULT_PAGE_LIMIT)
            self._ensure_ready()

            provider = self._by_address(q.address, q.provider)
            self._require(provider, "list_emails")
            return provider.get_emails(q)

        return self._guard("get_emails", run)

    def get_email_content(
        self,
        address: str,
        email_id: str,
        provider: Optional[str] = None,
        access_token: Optional[str] = None
    ) -> ChannelResponse[EmailMessage]:
        def run() -> ChannelResponse[EmailMessage]:
            if not address or email_id in (None, ""):
                raise ChannelError(
                    ChannelErrorType.API_ERROR,
                    "Email address and email ID are required",
                    SERVICE_PROVIDER,
                    retryable=False
                )
            self._ensure_ready()

            adapter = self._by_address(address, provider)
            self._require(adapter, "get_email_content")
            return adapter.get_email_content(address, str(email_id), access_token)

        return self._guard("get_email_content", run)

    def verify_email(self, address: str, provider: Optional[str] = None) -> ChannelResponse[EmailAddress]:
        def run() -> ChannelResponse[EmailAddress]:
            if not address:
                raise ChannelError(ChannelErrorType.API_ERROR, "Email address is required", SERVICE_PROVIDER, retryable=False)
            self._ensure_ready()
            return self._by_address(address, provider).verify_email(address)

        return self._guard("verify_email", run)

    def wait_for_email(
        self,
        address: str,
        timeout: float = 60,
        interval: float = 5,
        provider: Optional[str] = None,
        access_token: Optional[str] = None
    ) -> ChannelResponse[EmailMessage]:
        """
        Poll the inbox until a message arrives.

        Args:
            address: Mailbox to watch.
            timeout: Maximum wait time in seconds.
            interval: Poll interval in seconds.
            provider: Optional provider name.
            access_token: Mailbox token when the provider needs one.

        Returns:
            Envelope with the newest message, or an API_ERROR on timeout.
        """
        logger(f"⏳ Waiting for email (timeout: {timeout}s)...", level=0)
        start = time.monotonic()
        query = EmailListQuery(address=address, provider=provider, access_token=access_token, limit=1)

        while True:
            result = self.get_emails(query)
            if not result.success and result.error and not result.error.retryable:
                return result
            if result.success and result.data:
                logger("✅ New email received!", level=1)
                return ChannelResponse.ok(result.data[0], result.metadata.provider, (time.monotonic() - start) * 1000)

            elapsed = time.monotonic() - start
            if elapsed + interval > timeout:
                break
            logger(f"⏳ Waiting... ({int(elapsed)}/{timeout}s)", level=1)
            time.sleep(interval)

        logger("⏰ Timeout - no email received", level=1)
        error = ChannelError(ChannelErrorType.API_ERROR, f"No email received within {timeout}s", SERVICE_PROVIDER)
        return ChannelResponse.fail(error, result.metadata.provider, (time.monotonic() - start) * 1000)

    # ==========================================================================
    # Health & stats
    # ==========================================================================

    def get_providers_health(self) -> ChannelResponse[Dict[str, ChannelHealth]]:
        """
        Probe every adapter concurrently.

        A failing or hung probe only marks its own entry as error; the call
        itself always succeeds once the registry is ready.
        """
        def run() -> ChannelResponse[Dict[str, ChannelHealth]]:
            start = time.monotonic()
            self._ensure_ready()
            providers = self.registry.providers()

            results: Dict[str, ChannelHealth] = {}
            executor = ThreadPoolExecutor(max_workers=max(1, len(providers)), thread_name_prefix="health")
            try:
                futures = {p.name: (p, executor.submit(p.get_health)) for p in providers}
                # One deadline for the whole fan-out
                deadline = max(
                    (p.config.timeout * (p.config.retries + 1) + PROBE_GRACE for p in providers),
                    default=PROBE_GRACE
                )
                wait([future for _, future in futures.values()], timeout=deadline)

                for name, (provider, future) in futures.items():
                    if not future.done():
                        results[name] = self._error_health(provider, f"Health check timed out after {deadline:g}s")
                        continue
                    try:
                        results[name] = future.result()
                    except Exception as e:
                        results[name] = self._error_health(provider, format_error(e))
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

            healthy = sum(1 for h in results.values() if h.status == ChannelStatus.ACTIVE)
            logger(f"🩺 {healthy}/{len(results)} provider(s) healthy", level=0)
            return ChannelResponse.ok(results, SERVICE_PROVIDER, (time.monotonic() - start) * 1000)

        return self._guard("get_providers_health", run)

    def test_connections(self) -> ChannelResponse[Dict[str, ChannelHealth]]:
        """Force a fresh connectivity probe of every provider."""
        return self.get_providers_health()

    def get_providers_stats(self) -> ChannelResponse[Dict[str, Any]]:
        """Cached counters of every adapter. No network."""
        def run() -> ChannelResponse[Dict[str, Any]]:
            self._ensure_ready()
            stats = {p.name: p.get_stats() for p in self.registry.providers()}
            return ChannelResponse.ok(stats, SERVICE_PROVIDER)

        return self._guard("get_providers_stats", run)

    def get_info(self) -> ChannelResponse[Dict[str, Any]]:
        """Service description with the configured providers."""
        def run() -> ChannelResponse[Dict[str, Any]]:
            self._ensure_ready()
            providers = [
                {
                    "name": p.name,
                    "domains": sorted(p.domains),
                    "customizable": p.capabilities.custom_domains or p.capabilities.custom_prefix,
                    "capabilities": p.capabilities.to_dict(),
                    "enabled": p.config.enabled,
                    "priority": p.config.priority,
                }
                for p in self.registry.providers()
            ]
            return ChannelResponse.ok({
                "name": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "description": "Temporary email gateway service",
                "providers": providers,
            }, SERVICE_PROVIDER)

        return self._guard("get_info", run)

    @staticmethod
    def _error_health(provider: BaseMailProvider, message: str) -> ChannelHealth:
        stats = provider.get_stats()
        rate = stats.successful_requests / stats.total_requests * 100 if stats.total_requests else 0.0
        return ChannelHealth(
            status=ChannelStatus.ERROR,
            error_count=stats.failed_requests,
            success_rate=rate,
            uptime=rate if stats.total_requests else 100.0,
            last_error=message
        )


mail_service = MailService()
