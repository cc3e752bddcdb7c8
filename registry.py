"""
Provider registry.

Holds the {name -> adapter} mapping built from configuration. Initialization
runs once per process: concurrent first callers share a single attempt and
see the same outcome, and a failed attempt re-arms so the next caller retries.
"""

import threading
from concurrent.futures import Future
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Type

from config import get_channel_configs
from models import ChannelConfiguration, ChannelError, ChannelErrorType
from TempMailServices import PROVIDER_CLASSES, BaseMailProvider
from utils import format_error, logger


class RegistryState(str, Enum):
    """Lifecycle of the registry."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class ProviderRegistry:
    """
    Registry of configured provider adapters.

    Attributes:
        state: Current lifecycle state.
    """

    def __init__(
        self,
        configs: Optional[Iterable[ChannelConfiguration]] = None,
        provider_classes: Optional[Mapping[str, Type[BaseMailProvider]]] = None
    ):
        """
        Args:
            configs: Provider configurations; read from config.py when omitted.
            provider_classes: Adapter class per provider name.
        """
        self._configs = list(configs) if configs is not None else None
        self._classes: Dict[str, Type[BaseMailProvider]] = dict(provider_classes or PROVIDER_CLASSES)
        self._providers: Dict[str, BaseMailProvider] = {}
        self._lock = threading.Lock()
        self._pending: Optional[Future] = None
        self.state = RegistryState.UNINITIALIZED

    @property
    def initialized(self) -> bool:
        return self.state == RegistryState.READY

    def initialize(self, level: int = 0) -> None:
        """
        Build the adapters once.

        The first caller runs the build; callers arriving meanwhile wait for
        it and receive the same result or exception. On failure the state goes
        back to UNINITIALIZED.

        Args:
            level: Logging indentation level.

        Raises:
            ChannelError: CONFIGURATION_ERROR (or whatever the build raised)
                when initialization fails.
        """
        with self._lock:
            if self.state == RegistryState.READY:
                return
            if self._pending is not None:
                pending = self._pending
                owner = False
            else:
                pending = Future()
                self._pending = pending
                self.state = RegistryState.INITIALIZING
                owner = True

        if not owner:
            pending.result()
            return

        try:
            providers = self._build(level=level)
        except BaseException as e:
            with self._lock:
                self._pending = None
                self.state = RegistryState.UNINITIALIZED
            logger(f"❌ Failed to initialize providers: {format_error(e)}", level=level)
            pending.set_exception(e)
            raise

        with self._lock:
            self._providers = providers
            self._pending = None
            self.state = RegistryState.READY
        pending.set_result(None)

    def _build(self, level: int = 0) -> Dict[str, BaseMailProvider]:
        logger("🚀 Initializing providers...", level=level)
        configs = self._configs if self._configs is not None else get_channel_configs()

        providers: Dict[str, BaseMailProvider] = {}
        for config in sorted(configs, key=lambda c: c.priority):
            provider_class = self._classes.get(config.name)
            if provider_class is None:
                raise ChannelError(
                    ChannelErrorType.CONFIGURATION_ERROR,
                    f"Unknown provider in configuration: {config.name}",
                    config.name
                )
            if not config.enabled:
                logger(f"⏸ {config.name} disabled", level=level + 1)
                continue

            provider = provider_class(config)
            provider.initialize(level=level + 1)
            providers[config.name] = provider

        if not providers:
            raise ChannelError(ChannelErrorType.CONFIGURATION_ERROR, "No provider is enabled")

        logger(f"✅ {len(providers)} provider(s) ready: {', '.join(providers)}", level=level)
        return providers

    def reset(self) -> None:
        """Close every adapter and return to UNINITIALIZED."""
        with self._lock:
            for provider in self._providers.values():
                provider.close()
            self._providers = {}
            self._pending = None
            self.state = RegistryState.UNINITIALIZED

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get(self, name: str) -> Optional[BaseMailProvider]:
        return self._providers.get((name or "").lower())

    def names(self) -> List[str]:
        return list(self._providers)

    def providers(self) -> List[BaseMailProvider]:
        """Adapters in priority order."""
        return list(self._providers.values())

    def enabled_for_create(self) -> List[BaseMailProvider]:
        return [p for p in self.providers() if p.capabilities.create_email]

    def find_by_domain(self, domain: str) -> Optional[BaseMailProvider]:
        """First adapter, in priority order, that can issue the domain. No network."""
        for provider in self.providers():
            if provider.supports_domain(domain):
                return provider
        return None
