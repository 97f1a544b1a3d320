"""Unit tests for the generation orchestrator."""

from datetime import datetime
from unittest.mock import MagicMock
import asyncio
import threading
import time

import pytest

from imagehub.image.errors import (
    AllProvidersFailedError,
    ArtifactPersistError,
    ProviderNotFoundError,
    RemoteRejectionError,
    TaskTimedOutError,
)
from imagehub.image.models import GenerationRequest
from imagehub.image.registry import ProtocolMode, ProviderRegistry
from imagehub.image.service import ImageGenerationService
from imagehub.image.sizing import ImageSize


MOMENT = datetime(2026, 2, 20, 21, 56, 54)


class FakeStore:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []
        self.lock = threading.Lock()

    def persist(self, provider_key, remote_url, moment=None):
        with self.lock:
            self.calls.append((provider_key, remote_url))
        if provider_key in self.fail_for:
            raise ArtifactPersistError("disk full")
        return f"/out/2026-02-20/{provider_key}/215654.png"


@pytest.fixture
def sync_client():
    client = MagicMock()
    client.invoke.side_effect = lambda d, prompt, size=None: f"https://{d.key}/img.png"
    return client


@pytest.fixture
def task_poller():
    poller = MagicMock()
    poller.run.side_effect = lambda d, prompt, size=None: f"https://{d.key}/task.png"
    return poller


def build_service(descriptors, sync_client, task_poller, store=None):
    return ImageGenerationService(
        registry=ProviderRegistry(descriptors),
        store=store or FakeStore(),
        sync_client=sync_client,
        task_poller=task_poller,
        clock=lambda: MOMENT,
    )


class TestGenerateOne:

    def test_sync_provider_success(self, make_descriptor, sync_client, task_poller):
        store = FakeStore()
        service = build_service([make_descriptor("siliconflow")], sync_client, task_poller, store)

        outcome = service.generate_one("siliconflow", "a fox")

        assert outcome.success
        assert outcome.provider == "siliconflow"
        assert outcome.path == "/out/2026-02-20/siliconflow/215654.png"
        assert outcome.image_url == "https://siliconflow/img.png"
        assert outcome.error is None
        assert outcome.finished_at is not None
        assert store.calls == [("siliconflow", "https://siliconflow/img.png")]
        task_poller.run.assert_not_called()

    def test_async_provider_uses_poller(self, make_descriptor, sync_client, task_poller):
        descriptor = make_descriptor("aliyun", mode=ProtocolMode.ASYNC_POLL)
        service = build_service([descriptor], sync_client, task_poller)

        outcome = service.generate_one("aliyun", "a fox", "1920x1080")

        assert outcome.success
        assert outcome.image_url == "https://aliyun/task.png"
        task_poller.run.assert_called_once_with(descriptor, "a fox", ImageSize(1920, 1080))
        sync_client.invoke.assert_not_called()

    def test_missing_or_disabled_provider_raises(self, make_descriptor, sync_client, task_poller):
        service = build_service(
            [make_descriptor("off", credential="")], sync_client, task_poller
        )
        with pytest.raises(ProviderNotFoundError):
            service.generate_one("off", "p")
        with pytest.raises(ProviderNotFoundError):
            service.generate_one("nope", "p")
        sync_client.invoke.assert_not_called()

    def test_adapter_failure_becomes_failed_outcome(self, make_descriptor, sync_client, task_poller):
        sync_client.invoke.side_effect = RemoteRejectionError("HTTP 400: bad")
        service = build_service([make_descriptor("siliconflow")], sync_client, task_poller)

        outcome = service.generate_one("siliconflow", "p")

        assert not outcome.success
        assert outcome.path is None
        assert outcome.error == "HTTP 400: bad"
        assert outcome.error_kind == "RemoteRejectionError"
        assert not outcome.retryable

    def test_timeout_is_retryable_outcome(self, make_descriptor, sync_client, task_poller):
        task_poller.run.side_effect = TaskTimedOutError("T-1", 30)
        service = build_service(
            [make_descriptor("aliyun", mode=ProtocolMode.ASYNC_POLL)], sync_client, task_poller
        )

        outcome = service.generate_one("aliyun", "p")

        assert not outcome.success
        assert outcome.error_kind == "TaskTimedOutError"
        assert outcome.retryable

    def test_storage_failure_becomes_failed_outcome(self, make_descriptor, sync_client, task_poller):
        service = build_service(
            [make_descriptor("siliconflow")], sync_client, task_poller,
            FakeStore(fail_for={"siliconflow"}),
        )

        outcome = service.generate_one("siliconflow", "p")

        assert not outcome.success
        assert outcome.image_url is None
        assert outcome.error_kind == "ArtifactPersistError"

    def test_unexpected_exception_is_captured(self, make_descriptor, sync_client, task_poller):
        sync_client.invoke.side_effect = KeyError("data")
        service = build_service([make_descriptor("siliconflow")], sync_client, task_poller)

        outcome = service.generate_one("siliconflow", "p")

        assert not outcome.success
        assert outcome.error_kind == "KeyError"

    def test_model_override(self, make_descriptor, sync_client, task_poller):
        service = build_service([make_descriptor("siliconflow")], sync_client, task_poller)

        outcome = service.generate_one("siliconflow", "p", model="flux-dev")

        assert outcome.model == "flux-dev"
        assert sync_client.invoke.call_args.args[0].model == "flux-dev"


class TestGenerateFanOut:

    def test_one_outcome_per_enabled_provider(self, make_descriptor, sync_client, task_poller):
        descriptors = [
            make_descriptor("siliconflow"),
            make_descriptor("openai"),
            make_descriptor("aliyun", mode=ProtocolMode.ASYNC_POLL),
            make_descriptor("disabled", credential=""),
        ]

        def invoke(descriptor, prompt, size=None):
            if descriptor.key == "openai":
                raise RemoteRejectionError("boom")
            return f"https://{descriptor.key}/img.png"

        sync_client.invoke.side_effect = invoke
        service = build_service(descriptors, sync_client, task_poller)

        outcomes = asyncio.run(service.generate_fan_out("p"))

        assert sorted(o.provider for o in outcomes) == ["aliyun", "openai", "siliconflow"]
        by_key = {o.provider: o for o in outcomes}
        assert not by_key["openai"].success
        assert by_key["siliconflow"].success
        assert by_key["aliyun"].success

    def test_all_failures_still_yield_full_set(self, make_descriptor, sync_client, task_poller):
        sync_client.invoke.side_effect = RemoteRejectionError("down")
        descriptors = [make_descriptor(k) for k in ("a", "b", "c", "d")]
        service = build_service(descriptors, sync_client, task_poller)

        outcomes = service.generate_all("p")

        assert len(outcomes) == 4
        assert len({o.provider for o in outcomes}) == 4
        assert not any(o.success for o in outcomes)

    def test_providers_run_concurrently(self, make_descriptor, task_poller):
        barrier = threading.Barrier(3, timeout=5)

        def invoke(descriptor, prompt, size=None):
            # every worker must be alive at once to pass the barrier
            barrier.wait()
            return f"https://{descriptor.key}/img.png"

        client = MagicMock()
        client.invoke.side_effect = invoke
        service = build_service([make_descriptor(k) for k in ("a", "b", "c")], client, task_poller)

        outcomes = service.generate_all("p")

        assert all(o.success for o in outcomes)

    def test_cancelled_fan_out_releases_event_loop(self, make_descriptor, task_poller):
        release = threading.Event()

        def invoke(descriptor, prompt, size=None):
            release.wait(5)
            return f"https://{descriptor.key}/img.png"

        client = MagicMock()
        client.invoke.side_effect = invoke
        service = build_service([make_descriptor(k) for k in ("a", "b")], client, task_poller)

        async def run_with_deadline():
            ticks = []

            async def ticker():
                while True:
                    ticks.append(time.monotonic())
                    await asyncio.sleep(0.01)

            ticking = asyncio.create_task(ticker())
            started = time.monotonic()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(service.generate_fan_out("p"), timeout=0.1)
            elapsed = time.monotonic() - started
            await asyncio.sleep(0.05)
            ticking.cancel()
            return elapsed, ticks

        try:
            elapsed, ticks = asyncio.run(run_with_deadline())
        finally:
            release.set()

        # workers are still blocked; the caller must not wait for them
        assert elapsed < 1.0
        assert max(b - a for a, b in zip(ticks, ticks[1:])) < 1.0

    def test_no_enabled_providers(self, make_descriptor, sync_client, task_poller):
        service = build_service([make_descriptor("a", credential="")], sync_client, task_poller)
        assert service.generate_all("p") == []


class TestGenerateFirstSuccess:

    def test_stops_at_first_success_in_registry_order(self, make_descriptor, sync_client, task_poller):
        calls = []

        def invoke(descriptor, prompt, size=None):
            calls.append(descriptor.key)
            if descriptor.key == "a":
                raise RemoteRejectionError("nope")
            return f"https://{descriptor.key}/img.png"

        sync_client.invoke.side_effect = invoke
        service = build_service(
            [make_descriptor(k) for k in ("a", "b", "c")], sync_client, task_poller
        )

        outcome = service.generate_first_success("p")

        assert outcome.success
        assert outcome.provider == "b"
        assert calls == ["a", "b"]

    def test_all_failed_signal(self, make_descriptor, sync_client, task_poller):
        sync_client.invoke.side_effect = RemoteRejectionError("nope")
        service = build_service([make_descriptor(k) for k in ("a", "b")], sync_client, task_poller)

        with pytest.raises(AllProvidersFailedError) as excinfo:
            service.generate_first_success("p")
        assert [o.provider for o in excinfo.value.outcomes] == ["a", "b"]


class TestGenerateRequest:

    def test_explicit_provider(self, make_descriptor, sync_client, task_poller):
        service = build_service([make_descriptor("a"), make_descriptor("b")], sync_client, task_poller)
        outcome = service.generate(GenerationRequest(prompt="p", provider="b"))
        assert outcome.provider == "b"

    def test_default_mode_is_fan_out(self, make_descriptor, sync_client, task_poller):
        service = build_service([make_descriptor("a"), make_descriptor("b")], sync_client, task_poller)
        outcomes = service.generate(GenerationRequest(prompt="p"))
        assert sorted(o.provider for o in outcomes) == ["a", "b"]

    def test_first_success_mode(self, make_descriptor, sync_client, task_poller):
        service = build_service([make_descriptor("a"), make_descriptor("b")], sync_client, task_poller)
        outcome = service.generate(GenerationRequest(prompt="p", mode="first_success"))
        assert outcome.provider == "a"

    def test_request_validation(self):
        with pytest.raises(ValueError):
            GenerationRequest(prompt="   ")
        with pytest.raises(ValueError):
            GenerationRequest(prompt="p", mode="random")
