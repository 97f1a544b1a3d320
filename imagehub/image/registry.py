"""Provider descriptors and the in-memory provider registry.

Architectural role:
    Holds the provider set built by `imagehub.config.provider_config` at
    startup. The registry is passed explicitly into
    `service.ImageGenerationService`; nothing reads it through module globals.

Concurrency:
    Writes happen at startup (or reload); afterwards the registry is only
    read, which is safe from the fan-out worker threads.
"""

from dataclasses import dataclass
from enum import Enum
import logging

from imagehub.image.errors import ProviderNotFoundError


logger = logging.getLogger(__name__)


class ProtocolMode(str, Enum):
    """How a provider delivers its result."""

    SYNC = "sync"
    ASYNC_POLL = "async_poll"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable description of one image provider.

    Attributes:
        key: Unique provider key, also used as the artifact directory name.
        name: Display name.
        credential: Resolved API credential; empty when not configured.
        base_url: Base endpoint URL.
        model: Default model identifier.
        mode: Synchronous call or task submission plus polling.
        task_protocol: Name of the task protocol entry used in async mode;
            defaults to `key`.
        poll_interval: Seconds between polls in async mode.
        max_attempts: Poll attempt cap in async mode.
        description: Free-text description for listings.
    """

    key: str
    name: str
    credential: str
    base_url: str
    model: str
    mode: ProtocolMode = ProtocolMode.SYNC
    task_protocol: str | None = None
    poll_interval: float = 2.0
    max_attempts: int = 30
    description: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.credential and self.credential.strip())

    @property
    def protocol_name(self) -> str:
        return self.task_protocol or self.key

    def to_dict(self) -> dict:
        return {
            "id": self.key,
            "name": self.name,
            "model": self.model,
            "mode": self.mode.value,
            "description": self.description,
            "enabled": self.enabled,
        }


class ProviderRegistry:
    """Ordered mapping of provider key to descriptor."""

    def __init__(self, descriptors: list[ProviderDescriptor] | None = None):
        self._providers = {}
        for descriptor in descriptors or []:
            self.register(descriptor)

    def register(self, descriptor: ProviderDescriptor) -> None:
        """Add or replace a descriptor; re-registering a key keeps its position."""
        self._providers[descriptor.key] = descriptor
        if descriptor.enabled:
            logger.info("Provider enabled: %s - %s", descriptor.key, descriptor.name)
        else:
            logger.debug("Provider registered without credential: %s", descriptor.key)

    def enabled(self) -> list[ProviderDescriptor]:
        return [d for d in self._providers.values() if d.enabled]

    def lookup(self, key: str) -> ProviderDescriptor:
        descriptor = self._providers.get(key)
        if descriptor is None or not descriptor.enabled:
            raise ProviderNotFoundError(key)
        return descriptor

    def keys(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, key):
        return key in self._providers

    def __len__(self):
        return len(self._providers)
