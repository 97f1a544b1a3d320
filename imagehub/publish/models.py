"""Publish request/outcome contracts."""

from dataclasses import dataclass, field


@dataclass
class PublishRequest:
    """Publish call received from the API layer.

    An empty `platforms` list means every registered platform.
    """

    image_path: str
    platforms: list[str] = field(default_factory=list)
    title: str = ""
    content: str = ""


@dataclass
class PublishOutcome:
    platform: str
    success: bool
    result: str | None = None
    error: str | None = None

    @property
    def display(self) -> str:
        """Single string form: destination reference or `failed: <error>`."""
        if self.success:
            return self.result
        return f"failed: {self.error}"

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "success": self.success,
            "result": self.result,
            "error": self.error,
        }
