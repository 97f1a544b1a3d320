"""Image size parsing and provider size-token policy."""

from dataclasses import dataclass
import re


_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[xX*]\s*(\d+)\s*$")


@dataclass(frozen=True)
class ImageSize:
    width: int
    height: int

    def token(self, separator: str = "x") -> str:
        return f"{self.width}{separator}{self.height}"


def parse_size(text: str | None) -> ImageSize | None:
    """Parse `1920x1080` / `1920*1080` into an `ImageSize`.

    Returns `None` for empty input; raises `ValueError` for malformed or
    non-positive dimensions.
    """
    if text is None or not str(text).strip():
        return None
    match = _SIZE_PATTERN.match(str(text))
    if not match:
        raise ValueError(f"invalid size: {text!r} (expected WIDTHxHEIGHT)")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid size: {text!r} (dimensions must be positive)")
    return ImageSize(width, height)


def resolve_size(size: ImageSize) -> str:
    """Return the `WIDTHxHEIGHT` token sent to synchronous providers.

    Portrait requests (height above width) are sent with half the width,
    never less than one pixel.
    """
    if size.height > size.width:
        return f"{max(1, size.width // 2)}x{size.height}"
    return size.token()
