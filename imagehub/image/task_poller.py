"""Task-submission and polling client for asynchronous image providers.

Processing flow:
    1. Look up the provider's `TaskProtocol` entry.
    2. Submit a generation task and read the provider-assigned task id.
    3. Sleep, poll the status endpoint, classify the provider status token
       into `TaskStatus`, repeat until terminal or the attempt cap.
    4. Return the first result URL on success.

Provider protocols:
    Wire formats (paths, headers, field locations, status vocabularies) live
    in the `TASK_PROTOCOLS` table. Adding a provider means adding an entry,
    not a branch.

Error handling strategy:
    - Submission transport failures raise `TransportError`; submission
      rejections raise `RemoteRejectionError`.
    - A failing poll (network error, non-2xx, unparseable body) is logged
      and consumes one attempt; the loop keeps going.
    - Provider-reported failure and success without a URL raise
      `RemoteRejectionError`.
    - Exhausting the attempt budget raises `TaskTimedOutError`.

Performance characteristics:
    - Blocking HTTP and `time.sleep` polling; callers run this inside a
      worker thread (see `service.ImageGenerationService.generate_fan_out`).
"""

from dataclasses import dataclass, field
from typing import Callable
import logging
import time

import requests

from imagehub.image.errors import (
    RemoteRejectionError,
    TaskTimedOutError,
    TransportError,
)
from imagehub.image.models import PollableTask, TaskStatus
from imagehub.image.registry import ProviderDescriptor
from imagehub.image.sizing import ImageSize


logger = logging.getLogger(__name__)


def _dig(data, path: tuple):
    """Follow a key path through nested dicts; `None` on any miss."""
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _field_status(path):
    def read(data):
        value = _dig(data, path)
        return value if isinstance(value, str) else None
    return read


def _horde_status(data) -> str | None:
    if not isinstance(data, dict):
        return None
    if data.get("faulted"):
        return "faulted"
    if data.get("done") or data.get("finished"):
        return "done"
    if data.get("processing"):
        return "processing"
    return None


def _aliyun_payload(descriptor, prompt, size, default_size) -> dict:
    size = size or default_size
    return {
        "model": descriptor.model,
        "input": {"prompt": prompt},
        "parameters": {"size": size.token("*"), "n": 1},
    }


def _modelscope_payload(descriptor, prompt, size, default_size) -> dict:
    payload = {"model": descriptor.model, "prompt": prompt}
    # Only an explicit request carries a size; the provider default applies otherwise.
    if size is not None:
        payload["size"] = size.token()
    return payload


def _horde_payload(descriptor, prompt, size, default_size) -> dict:
    size = size or default_size
    return {
        "prompt": prompt,
        "models": [descriptor.model],
        "params": {"width": size.width, "height": size.height, "steps": 25},
    }


@dataclass(frozen=True)
class TaskProtocol:
    """Wire description of one task-based provider.

    Attributes:
        name: Protocol key referenced by `ProviderDescriptor.task_protocol`.
        submit_path: Path appended to the descriptor base URL for submission.
        status_path: Status path template containing `{task_id}`.
        build_payload: `(descriptor, prompt, size, default_size) -> dict`.
        task_id_path: Key path of the task id in the submission response.
        read_status: Extracts the raw provider status token from a poll body.
        vocabulary: Raw status token -> canonical `TaskStatus`.
        results_path: Key path of the result list in a poll body.
        url_keys: Keys holding the URL when result entries are dicts.
        auth_header: Header carrying the credential.
        auth_scheme: Prefix placed before the credential.
        submit_headers: Extra headers for the submission call.
        status_headers: Extra headers for poll calls.
    """

    name: str
    submit_path: str
    status_path: str
    build_payload: Callable
    task_id_path: tuple
    read_status: Callable
    vocabulary: dict
    results_path: tuple
    url_keys: tuple = ("url",)
    auth_header: str = "Authorization"
    auth_scheme: str = "Bearer "
    submit_headers: dict = field(default_factory=dict)
    status_headers: dict = field(default_factory=dict)

    def classify(self, data) -> TaskStatus:
        """Map a poll body to `TaskStatus`; unknown or absent tokens are PENDING."""
        raw = self.read_status(data)
        if raw is None:
            return TaskStatus.PENDING
        return self.vocabulary.get(raw.strip().upper(), TaskStatus.PENDING)

    def extract_url(self, data) -> str | None:
        results = _dig(data, self.results_path)
        if not isinstance(results, list):
            return None
        for item in results:
            if isinstance(item, str) and item:
                return item
            if isinstance(item, dict):
                for key in self.url_keys:
                    if item.get(key):
                        return item[key]
        return None

    def auth_headers(self, credential: str) -> dict:
        return {self.auth_header: f"{self.auth_scheme}{credential}"}


TASK_PROTOCOLS = {
    "aliyun": TaskProtocol(
        name="aliyun",
        submit_path="/services/aigc/text2image/image-synthesis",
        status_path="/tasks/{task_id}",
        build_payload=_aliyun_payload,
        task_id_path=("output", "task_id"),
        read_status=_field_status(("output", "task_status")),
        vocabulary={
            "PENDING": TaskStatus.PENDING,
            "RUNNING": TaskStatus.RUNNING,
            "SUCCEEDED": TaskStatus.SUCCEEDED,
            "FAILED": TaskStatus.FAILED,
            "CANCELED": TaskStatus.FAILED,
        },
        results_path=("output", "results"),
        submit_headers={"X-DashScope-Async": "enable"},
    ),
    "modelscope": TaskProtocol(
        name="modelscope",
        submit_path="/v1/images/generations",
        status_path="/v1/tasks/{task_id}",
        build_payload=_modelscope_payload,
        task_id_path=("task_id",),
        read_status=_field_status(("task_status",)),
        vocabulary={
            "PENDING": TaskStatus.PENDING,
            "RUNNING": TaskStatus.RUNNING,
            "PROCESSING": TaskStatus.RUNNING,
            "SUCCEED": TaskStatus.SUCCEEDED,
            "FAILED": TaskStatus.FAILED,
        },
        results_path=("output_images",),
        submit_headers={"X-ModelScope-Async-Mode": "true"},
        status_headers={"X-ModelScope-Task-Type": "image_generation"},
    ),
    "ai_horde": TaskProtocol(
        name="ai_horde",
        submit_path="/generate/async",
        status_path="/generate/status/{task_id}",
        build_payload=_horde_payload,
        task_id_path=("id",),
        read_status=_horde_status,
        vocabulary={
            "PROCESSING": TaskStatus.RUNNING,
            "DONE": TaskStatus.SUCCEEDED,
            "FAULTED": TaskStatus.FAILED,
        },
        results_path=("generations",),
        url_keys=("img", "image_url"),
        auth_header="apikey",
        auth_scheme="",
    ),
}


class TaskPoller:
    """Asynchronous provider strategy: submit a task, then poll it.

    Args:
        default_size: Dimensions used when a call carries no size override.
        timeout: Per-request transport timeout in seconds.
        http: Object exposing `get`/`post` like the `requests` module.
        sleep: Blocking sleep function used between polls.
        protocols: Protocol table; defaults to `TASK_PROTOCOLS`.
    """

    def __init__(
        self,
        default_size: ImageSize = ImageSize(1024, 2048),
        timeout: float = 30.0,
        http=None,
        sleep=time.sleep,
        protocols=None,
    ):
        self.default_size = default_size
        self.timeout = timeout
        self.http = http or requests
        self.sleep = sleep
        self.protocols = protocols if protocols is not None else TASK_PROTOCOLS

    def protocol_for(self, descriptor: ProviderDescriptor) -> TaskProtocol:
        protocol = self.protocols.get(descriptor.protocol_name)
        if protocol is None:
            raise RemoteRejectionError(
                f"[{descriptor.name}] no task protocol named {descriptor.protocol_name!r}"
            )
        return protocol

    def _url(self, descriptor: ProviderDescriptor, path: str) -> str:
        return descriptor.base_url.rstrip("/") + path

    def submit(
        self, descriptor: ProviderDescriptor, prompt: str, size: ImageSize | None = None
    ) -> PollableTask:
        """Create a provider task and return it in PENDING state."""
        protocol = self.protocol_for(descriptor)
        headers = {"Content-Type": "application/json"}
        headers.update(protocol.auth_headers(descriptor.credential))
        headers.update(protocol.submit_headers)
        payload = protocol.build_payload(descriptor, prompt, size, self.default_size)

        try:
            response = self.http.post(
                self._url(descriptor, protocol.submit_path),
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as err:
            raise TransportError(f"[{descriptor.name}] task submission failed: {err}") from err

        if not 200 <= response.status_code < 300:
            raise RemoteRejectionError(
                f"[{descriptor.name}] task submission HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        task_id = _dig(data, protocol.task_id_path)
        if not task_id:
            raise RemoteRejectionError(
                f"[{descriptor.name}] no task id in response: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        logger.info("[%s] task created: %s", descriptor.name, task_id)
        return PollableTask(task_id=str(task_id), provider=descriptor.key)

    def poll_until_terminal(
        self,
        task: PollableTask,
        descriptor: ProviderDescriptor,
        interval: float | None = None,
        max_attempts: int | None = None,
    ) -> str:
        """Poll `task` until it finishes and return the first result URL.

        Args:
            task: Task returned by `submit`; mutated in place.
            descriptor: Provider the task belongs to.
            interval: Seconds between polls; defaults to the descriptor's.
            max_attempts: Poll cap; defaults to the descriptor's.
        """
        protocol = self.protocol_for(descriptor)
        interval = descriptor.poll_interval if interval is None else interval
        max_attempts = descriptor.max_attempts if max_attempts is None else max_attempts
        status_url = self._url(descriptor, protocol.status_path.format(task_id=task.task_id))
        headers = protocol.auth_headers(descriptor.credential)
        headers.update(protocol.status_headers)

        while task.attempts < max_attempts:
            self.sleep(interval)
            task.attempts += 1

            try:
                response = self.http.get(status_url, headers=headers, timeout=self.timeout)
            except requests.exceptions.RequestException as err:
                logger.warning(
                    "[%s] poll %d/%d failed: %s", descriptor.name, task.attempts, max_attempts, err
                )
                continue

            if not 200 <= response.status_code < 300:
                logger.warning(
                    "[%s] poll %d/%d returned HTTP %s",
                    descriptor.name, task.attempts, max_attempts, response.status_code,
                )
                continue

            try:
                data = response.json()
            except ValueError:
                logger.warning("[%s] poll %d/%d returned unparseable body", descriptor.name, task.attempts, max_attempts)
                continue

            status = protocol.classify(data)

            if status is TaskStatus.SUCCEEDED:
                image_url = protocol.extract_url(data)
                if not image_url:
                    task.transition(TaskStatus.FAILED)
                    raise RemoteRejectionError(
                        f"[{descriptor.name}] task {task.task_id} succeeded without an image URL",
                        status_code=response.status_code,
                        body=response.text,
                    )
                task.transition(TaskStatus.SUCCEEDED)
                logger.info("[%s] task %s succeeded after %d polls", descriptor.name, task.task_id, task.attempts)
                return image_url

            if status is TaskStatus.FAILED:
                task.transition(TaskStatus.FAILED)
                raise RemoteRejectionError(
                    f"[{descriptor.name}] task {task.task_id} failed: {response.text}",
                    status_code=response.status_code,
                    body=response.text,
                )

            task.transition(status)
            logger.debug("[%s] task %s status: %s", descriptor.name, task.task_id, status.value)

        task.transition(TaskStatus.TIMED_OUT)
        logger.warning("[%s] task %s timed out", descriptor.name, task.task_id)
        raise TaskTimedOutError(task.task_id, task.attempts)

    def run(self, descriptor: ProviderDescriptor, prompt: str, size: ImageSize | None = None) -> str:
        task = self.submit(descriptor, prompt, size)
        return self.poll_until_terminal(task, descriptor)
