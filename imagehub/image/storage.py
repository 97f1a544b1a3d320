"""Artifact download and deterministic on-disk placement.

Path scheme:
    `{output_root}/{YYYY-MM-DD}/{provider_key}/{HHMMSS}.png`

    Downstream consumers rely on this layout; two downloads for the same
    provider within one second share a path and the later one wins.

Write semantics:
    The whole payload is buffered before anything touches the filesystem,
    then written to a temporary file in the target directory and moved into
    place with `os.replace`, so a failed download never leaves a partial file.
"""

from datetime import datetime
import logging
import os
import tempfile

import requests

from imagehub.image.errors import ArtifactPersistError


logger = logging.getLogger(__name__)


class ArtifactStore:
    """Downloads remote images into the dated output tree.

    Args:
        output_root: Root directory of the artifact tree.
        timeout: Download timeout in seconds.
        http: Object exposing `get(...)` like the `requests` module.
        clock: Returns the current `datetime`; used when no moment is given.
    """

    def __init__(self, output_root: str, timeout: float = 60.0, http=None, clock=datetime.now):
        self.output_root = output_root
        self.timeout = timeout
        self.http = http or requests
        self.clock = clock

    def artifact_path(self, provider_key: str, moment: datetime) -> str:
        return os.path.join(
            self.output_root,
            moment.strftime("%Y-%m-%d"),
            provider_key,
            moment.strftime("%H%M%S") + ".png",
        )

    def fetch(self, remote_url: str) -> bytes:
        try:
            response = self.http.get(remote_url, timeout=self.timeout)
        except requests.exceptions.RequestException as err:
            raise ArtifactPersistError(f"download failed: {err}") from err

        if not 200 <= response.status_code < 300:
            raise ArtifactPersistError(
                f"download failed with HTTP {response.status_code}: {remote_url}"
            )
        if not response.content:
            raise ArtifactPersistError(f"download returned an empty body: {remote_url}")
        return response.content

    def persist(self, provider_key: str, remote_url: str, moment: datetime | None = None) -> str:
        """Download `remote_url` and return the local artifact path."""
        moment = moment or self.clock()
        path = self.artifact_path(provider_key, moment)
        directory = os.path.dirname(path)

        payload = self.fetch(remote_url)

        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=directory, prefix=".download-", suffix=".tmp", delete=False
            ) as tmp:
                tmp_path = tmp.name
                tmp.write(payload)
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, path)
        except OSError as err:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise ArtifactPersistError(f"could not write {path}: {err}") from err

        logger.info("[%s] saved %d bytes to %s", provider_key, len(payload), path)
        return path
