"""Publish registry and dispatcher.

Architectural role:
    Mirrors `imagehub.image.service` for the publish boundary: a registry of
    platform adapters keyed by platform id, invoked for one or many targets,
    with one independent `PublishOutcome` per requested key.

Error handling strategy:
    Nothing raises past `dispatch`. Unknown platforms, missing artifacts and
    adapter exceptions are captured into failed outcomes, so one platform
    cannot affect another in `dispatch_many`.
"""

import logging
import os

from imagehub.publish.models import PublishOutcome, PublishRequest
from imagehub.publish.platforms import PublishPlatform


logger = logging.getLogger(__name__)


class PublishDispatcher:
    def __init__(self, platforms: list[PublishPlatform] | None = None):
        self._platforms = {}
        for platform in platforms or []:
            self.register(platform)

    def register(self, platform: PublishPlatform) -> None:
        self._platforms[platform.key] = platform
        logger.info("Publish platform registered: %s (%s)", platform.key, platform.name)

    def get(self, key: str) -> PublishPlatform | None:
        return self._platforms.get(key)

    def platforms(self) -> list[PublishPlatform]:
        return list(self._platforms.values())

    def keys(self) -> list[str]:
        return list(self._platforms)

    def dispatch(self, key: str, image_path: str, title: str = "", content: str = "") -> PublishOutcome:
        """Publish to one platform and return its outcome."""
        platform = self._platforms.get(key)
        if platform is None:
            return PublishOutcome(key, False, error=f"unsupported platform: {key}")
        if not image_path or not os.path.isfile(image_path):
            return PublishOutcome(key, False, error=f"artifact not found: {image_path}")

        try:
            result = platform.publish(image_path, title, content)
        except Exception as err:
            logger.warning("[%s] publish failed: %s", platform.name, err)
            return PublishOutcome(key, False, error=str(err) or type(err).__name__)

        return PublishOutcome(key, True, result=result)

    def dispatch_many(
        self, keys: list[str], image_path: str, title: str = "", content: str = ""
    ) -> dict[str, PublishOutcome]:
        """Publish to several platforms; empty `keys` means every registered one."""
        targets = list(keys) if keys else self.keys()
        results = {}
        for key in targets:
            if key in results:
                continue
            results[key] = self.dispatch(key, image_path, title, content)
        return results

    def publish(self, request: PublishRequest) -> dict[str, PublishOutcome]:
        """Dispatch a `PublishRequest`."""
        return self.dispatch_many(
            request.platforms, request.image_path, request.title, request.content
        )
