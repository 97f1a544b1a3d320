"""Image generation orchestrator used by the API and CLI adapters.

Role in pipeline:
    - Resolves provider descriptors from the registry.
    - Selects the adapter strategy from the descriptor's protocol mode
      (`SyncImageClient` or `TaskPoller`).
    - Hands successful remote URLs to `ArtifactStore`.
    - Returns `GenerationOutcome` values; adapter failures never escape.

Modes:
    - `generate_one`: a single named provider.
    - `generate_fan_out`: every enabled provider concurrently, one worker
      thread each; all outcomes are collected.
    - `generate_first_success`: providers tried one after another in
      registry order, stopping at the first success.

Error handling strategy:
    - Unknown/disabled provider keys raise `ProviderNotFoundError`.
    - Adapter and storage errors are captured into failed outcomes.
    - First-success mode raises `AllProvidersFailedError` when nothing works.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
import asyncio
import logging

from imagehub.image.client import SyncImageClient
from imagehub.image.errors import AllProvidersFailedError, ImageHubError
from imagehub.image.models import GenerationOutcome, GenerationRequest
from imagehub.image.registry import ProtocolMode, ProviderDescriptor, ProviderRegistry
from imagehub.image.sizing import ImageSize, parse_size
from imagehub.image.task_poller import TaskPoller


logger = logging.getLogger(__name__)


class ImageGenerationService:
    """Dispatches generation requests across registered providers.

    Args:
        registry: `ProviderRegistry` holding the provider set.
        store: `ArtifactStore` receiving successful downloads.
        sync_client: Adapter for `ProtocolMode.SYNC` providers.
        task_poller: Adapter for `ProtocolMode.ASYNC_POLL` providers.
        default_size: Size used by adapters when a call has no override.
        clock: Returns the current `datetime`.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store,
        sync_client: SyncImageClient | None = None,
        task_poller: TaskPoller | None = None,
        default_size: ImageSize = ImageSize(1024, 2048),
        clock=datetime.now,
    ):
        self.registry = registry
        self.store = store
        self.sync_client = sync_client or SyncImageClient(default_size=default_size)
        self.task_poller = task_poller or TaskPoller(default_size=default_size)
        self.clock = clock

    def _remote_url(self, descriptor, prompt, size) -> str:
        if descriptor.mode is ProtocolMode.ASYNC_POLL:
            return self.task_poller.run(descriptor, prompt, size)
        return self.sync_client.invoke(descriptor, prompt, size)

    def _attempt(self, descriptor: ProviderDescriptor, prompt: str, size) -> GenerationOutcome:
        outcome = GenerationOutcome(
            provider=descriptor.key,
            provider_name=descriptor.name,
            model=descriptor.model,
            success=False,
            started_at=self.clock(),
        )
        logger.info("[%s] generation started", descriptor.name)

        try:
            image_url = self._remote_url(descriptor, prompt, size)
            outcome.path = self.store.persist(descriptor.key, image_url, self.clock())
            outcome.image_url = image_url
            outcome.success = True
        except ImageHubError as err:
            outcome.error = str(err)
            outcome.error_kind = type(err).__name__
            outcome.retryable = err.retryable
            logger.warning("[%s] generation failed: %s", descriptor.name, err)
        except Exception as err:
            outcome.error = str(err) or type(err).__name__
            outcome.error_kind = type(err).__name__
            logger.exception("[%s] unexpected generation failure", descriptor.name)

        outcome.finished_at = self.clock()
        if outcome.success:
            logger.info(
                "[%s] generated %s in %.1fs",
                descriptor.name, outcome.path, outcome.elapsed_seconds,
            )
        return outcome

    def generate_one(
        self,
        provider_key: str,
        prompt: str,
        size: ImageSize | str | None = None,
        model: str | None = None,
    ) -> GenerationOutcome:
        """Generate with one provider.

        Args:
            provider_key: Registry key of an enabled provider.
            prompt: User prompt.
            size: Optional `ImageSize` or size string override.
            model: Optional model identifier override.

        Raises:
            ProviderNotFoundError: Key is unknown or the provider is disabled.
        """
        descriptor = self.registry.lookup(provider_key)
        if model:
            descriptor = replace(descriptor, model=model)
        return self._attempt(descriptor, prompt, _coerce_size(size))

    async def generate_fan_out(
        self, prompt: str, size: ImageSize | str | None = None
    ) -> list[GenerationOutcome]:
        """Run every enabled provider concurrently and collect all outcomes.

        Each provider runs in its own thread; a dedicated executor sized to the
        provider count keeps the shared default pool from bounding the batch.
        """
        size = _coerce_size(size)
        descriptors = self.registry.enabled()
        if not descriptors:
            logger.warning("No enabled providers; nothing to generate")
            return []

        logger.info("Fan-out generation across %d providers", len(descriptors))
        loop = asyncio.get_running_loop()
        pool = ThreadPoolExecutor(max_workers=len(descriptors), thread_name_prefix="imagegen")
        try:
            futures = [
                loop.run_in_executor(pool, self._attempt, descriptor, prompt, size)
                for descriptor in descriptors
            ]
            results = await asyncio.gather(*futures, return_exceptions=True)
        finally:
            # never join workers on the loop thread; a cancelled caller returns at once
            pool.shutdown(wait=False, cancel_futures=True)

        outcomes = []
        for descriptor, result in zip(descriptors, results):
            if isinstance(result, BaseException):
                logger.error("[%s] worker crashed: %r", descriptor.name, result)
                now = self.clock()
                result = GenerationOutcome(
                    provider=descriptor.key,
                    provider_name=descriptor.name,
                    model=descriptor.model,
                    success=False,
                    error=str(result) or type(result).__name__,
                    error_kind=type(result).__name__,
                    started_at=now,
                    finished_at=now,
                )
            outcomes.append(result)

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info("Fan-out finished: %d/%d succeeded", succeeded, len(outcomes))
        return outcomes

    def generate_all(
        self, prompt: str, size: ImageSize | str | None = None
    ) -> list[GenerationOutcome]:
        """Synchronous wrapper around `generate_fan_out`.

        Must not be called from a running event loop; async callers await
        `generate_fan_out` directly.
        """
        return asyncio.run(self.generate_fan_out(prompt, size))

    def generate_first_success(
        self, prompt: str, size: ImageSize | str | None = None
    ) -> GenerationOutcome:
        """Try providers in registry order and return the first success.

        Raises:
            AllProvidersFailedError: Every enabled provider failed (or none is
                enabled); the error carries the failed outcomes.
        """
        size = _coerce_size(size)
        failures = []
        for descriptor in self.registry.enabled():
            outcome = self._attempt(descriptor, prompt, size)
            if outcome.success:
                return outcome
            failures.append(outcome)
        raise AllProvidersFailedError(failures)

    def generate(self, request: GenerationRequest):
        """Route a `GenerationRequest` to the matching mode.

        Returns a single outcome for an explicit provider or first-success
        mode, and a list of outcomes for fan-out mode.
        """
        if request.provider:
            return self.generate_one(
                request.provider, request.prompt, request.size, request.model
            )
        if request.mode == "first_success":
            return self.generate_first_success(request.prompt, request.size)
        return self.generate_all(request.prompt, request.size)


def _coerce_size(size) -> ImageSize | None:
    if size is None or isinstance(size, ImageSize):
        return size
    return parse_size(size)
