"""Publish platform adapters.

Each adapter turns a local artifact plus title/content into a destination
reference (`publish(...) -> str`) or raises. Adapters never catch their own
failures; `dispatcher.PublishDispatcher` converts them into outcomes.

Adapters:
    - `XiaohongshuPlatform`: cookie and session-token authenticated upload
      through the Xiaohongshu MCP bridge.
    - `PendingPlatform`: placeholder for platforms whose integration is not
      built yet (Douyin, Bilibili).
    - `HttpUploadPlatform`: generic multipart upload to any HTTP endpoint.
"""

from abc import ABC, abstractmethod
import logging
import os

import requests

from imagehub.image.errors import RemoteRejectionError, TransportError


logger = logging.getLogger(__name__)

DEFAULT_XIAOHONGSHU_MCP_URL = "http://127.0.0.1:18060/mcp"


class PublishPlatform(ABC):
    """Capability shared by every publish target."""

    key = ""
    name = ""

    @property
    def has_credentials(self) -> bool:
        return True

    @abstractmethod
    def publish(self, image_path: str, title: str, content: str) -> str:
        """Publish `image_path` and return a destination reference."""

    def to_dict(self) -> dict:
        return {
            "id": self.key,
            "name": self.name,
            "hasCredentials": self.has_credentials,
        }


def _destination(response, fallback: str) -> str:
    """Pick the destination URL out of a JSON reply, if the platform sent one."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        for key in ("url", "link", "note_url"):
            if data.get(key):
                return data[key]
    return fallback


def _multipart_post(http, url, image_path, title, content, headers, timeout, label):
    with open(image_path, "rb") as image:
        files = {"image": (os.path.basename(image_path), image, "image/png")}
        data = {"title": title, "content": content}
        try:
            response = http.post(url, files=files, data=data, headers=headers, timeout=timeout)
        except requests.exceptions.RequestException as err:
            raise TransportError(f"[{label}] upload failed: {err}") from err

    if response.status_code >= 400:
        raise RemoteRejectionError(
            f"[{label}] HTTP {response.status_code}",
            status_code=response.status_code,
            body=response.text,
        )
    return response


class XiaohongshuPlatform(PublishPlatform):
    """Xiaohongshu publishing through the local MCP bridge.

    Authentication uses the browser session: `cookies` goes into the
    `Cookie` header and `x_sec_token` into `X-Sec-Token`.
    """

    key = "xiaohongshu"
    name = "Xiaohongshu"

    def __init__(
        self,
        mcp_url: str | None = None,
        cookies: str = "",
        x_sec_token: str = "",
        timeout: float = 30.0,
        http=None,
    ):
        self.mcp_url = mcp_url or DEFAULT_XIAOHONGSHU_MCP_URL
        self.cookies = cookies
        self.x_sec_token = x_sec_token
        self.timeout = timeout
        self.http = http or requests

    @property
    def has_credentials(self) -> bool:
        return bool(self.cookies)

    def set_cookies(self, cookies: str) -> None:
        self.cookies = cookies

    def set_x_sec_token(self, token: str) -> None:
        self.x_sec_token = token

    def publish(self, image_path: str, title: str, content: str) -> str:
        logger.info("[%s] publishing %s", self.name, image_path)
        headers = {}
        if self.cookies:
            headers["Cookie"] = self.cookies
        if self.x_sec_token:
            headers["X-Sec-Token"] = self.x_sec_token

        response = _multipart_post(
            self.http,
            self.mcp_url.rstrip("/") + "/publish",
            image_path, title, content, headers, self.timeout, self.name,
        )
        logger.info("[%s] published", self.name)
        return _destination(response, "published")


class PendingPlatform(PublishPlatform):
    """Registered platform whose publishing integration is still in development."""

    def __init__(self, key: str, name: str):
        self.key = key
        self.name = name

    def publish(self, image_path: str, title: str, content: str) -> str:
        logger.info("[%s] publish requested for %s (not implemented)", self.name, image_path)
        return f"{self.name} publishing is in development"


class HttpUploadPlatform(PublishPlatform):
    """Generic multipart upload (`image`, `title`, `content`) to an endpoint."""

    def __init__(
        self,
        key: str,
        name: str,
        api_url: str = "",
        auth_header: str = "",
        timeout: float = 30.0,
        http=None,
    ):
        self.key = key
        self.name = name
        self.api_url = api_url
        self.auth_header = auth_header
        self.timeout = timeout
        self.http = http or requests

    @property
    def has_credentials(self) -> bool:
        return bool(self.auth_header)

    def publish(self, image_path: str, title: str, content: str) -> str:
        logger.info("[%s] publishing %s", self.name, image_path)
        if not self.api_url:
            raise RemoteRejectionError(f"[{self.name}] no API URL configured")

        headers = {}
        if self.auth_header:
            headers["Authorization"] = self.auth_header

        response = _multipart_post(
            self.http, self.api_url, image_path, title, content,
            headers, self.timeout, self.name,
        )
        return _destination(response, "published")
