"""Synchronous image-provider HTTP client.

Processing flow:
    1. Resolve the size token from the requested (or default) dimensions.
    2. Submit `{model, prompt, size, n: 1}` to the provider's
       `/images/generations` endpoint.
    3. Return the first `data[].url` from the response or raise.

Providers:
    OpenAI-compatible endpoints that answer inline (SiliconFlow, OpenAI).

Error handling strategy:
    - Transport failures raise `TransportError`.
    - Non-200 status, undecodable JSON, or an empty result list raise
      `RemoteRejectionError` carrying the response body.
    - No retry is attempted here; retry is a caller decision.

Security considerations:
    - Exceptions may include upstream provider response bodies.
"""

import logging

import requests

from imagehub.image.errors import RemoteRejectionError, TransportError
from imagehub.image.registry import ProviderDescriptor
from imagehub.image.sizing import ImageSize, resolve_size


logger = logging.getLogger(__name__)

GENERATIONS_PATH = "/images/generations"


def generations_url(base_url: str) -> str:
    """Append the generations path unless the configured URL already has it."""
    if GENERATIONS_PATH in base_url:
        return base_url
    return base_url.rstrip("/") + GENERATIONS_PATH


class SyncImageClient:
    """One-shot request/response provider strategy.

    Args:
        default_size: Dimensions used when a call carries no size override.
        timeout: Transport timeout in seconds.
        http: Object exposing `post(...)` like the `requests` module.
    """

    def __init__(self, default_size: ImageSize = ImageSize(1024, 2048), timeout: float = 120.0, http=None):
        self.default_size = default_size
        self.timeout = timeout
        self.http = http or requests

    def build_payload(self, descriptor: ProviderDescriptor, prompt: str, size: ImageSize | None = None) -> dict:
        return {
            "model": descriptor.model,
            "prompt": prompt,
            "size": resolve_size(size or self.default_size),
            "n": 1,
        }

    def invoke(self, descriptor: ProviderDescriptor, prompt: str, size: ImageSize | None = None) -> str:
        """Generate one image and return its remote URL.

        Args:
            descriptor: Enabled synchronous `ProviderDescriptor`.
            prompt: User prompt.
            size: Optional `ImageSize` override.

        Returns:
            URL of the generated image.
        """
        payload = self.build_payload(descriptor, prompt, size)
        headers = {
            "Authorization": f"Bearer {descriptor.credential}",
            "Content-Type": "application/json",
        }
        url = generations_url(descriptor.base_url)

        try:
            response = self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as err:
            raise TransportError(f"[{descriptor.name}] request failed: {err}") from err

        if response.status_code != 200:
            raise RemoteRejectionError(
                f"[{descriptor.name}] HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as err:
            raise RemoteRejectionError(
                f"[{descriptor.name}] could not parse response: {response.text}",
                status_code=response.status_code,
                body=response.text,
            ) from err

        results = data.get("data") if isinstance(data, dict) else None
        if not results or not isinstance(results[0], dict) or not results[0].get("url"):
            raise RemoteRejectionError(
                f"[{descriptor.name}] no image returned: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        logger.debug("[%s] image ready at %s", descriptor.name, results[0]["url"])
        return results[0]["url"]
