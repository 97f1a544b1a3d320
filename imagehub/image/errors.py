"""Error taxonomy for provider adapters and orchestration.

Adapters raise these exceptions; `service.ImageGenerationService` and
`imagehub.publish.dispatcher.PublishDispatcher` capture them into outcome
values so one provider or platform never aborts a batch.
"""


class ImageHubError(Exception):
    """Base class for all imagehub failures."""

    retryable = False


class ProviderNotFoundError(ImageHubError):
    """Requested provider key is unknown or its credential is missing."""

    def __init__(self, key):
        super().__init__(f"Provider not found or not enabled: {key}")
        self.key = key


class TransportError(ImageHubError):
    """Network failure while reaching a remote endpoint."""

    retryable = True


class RemoteRejectionError(ImageHubError):
    """Remote endpoint answered with an error status or a malformed payload."""

    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TaskTimedOutError(ImageHubError):
    """Poll attempt budget exhausted before the task reached a terminal state."""

    retryable = True

    def __init__(self, task_id, attempts):
        super().__init__(f"Task {task_id} did not finish after {attempts} polls")
        self.task_id = task_id
        self.attempts = attempts


class ArtifactPersistError(ImageHubError):
    """Artifact download or local write failed."""


class AllProvidersFailedError(ImageHubError):
    """No provider produced an artifact in first-success mode."""

    def __init__(self, outcomes):
        keys = ", ".join(o.provider for o in outcomes) or "none"
        super().__init__(f"All providers failed ({keys})")
        self.outcomes = list(outcomes)
