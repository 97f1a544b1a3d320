"""Provider, publishing and runtime configuration.

Architectural role:
    Centralizes provider selection and credential lookup, then builds the
    runtime objects (`ProviderRegistry`, `ImageGenerationService`,
    `PublishDispatcher`) consumed by `imagehub.api`.

Resolution order (later wins):
    1. Built-in defaults in `IMAGE_PROVIDERS` / `DEFAULT_IMAGE_GEN`.
    2. Optional YAML file (`IMAGEHUB_CONFIG`, default `config/config.yaml`)
       with `imageGen`, `platforms` and `publish` sections.
    3. Environment variables (`IMAGE_OUTPUT_DIR`, `IMAGE_WIDTH`, ...).

Credentials:
    Provider credentials come only from the environment variable named by
    each entry's `envKey`. A provider without a credential is registered
    but disabled.

Example YAML:

    imageGen:
      outputDir: /data/out
      width: 1024
      height: 2048
    platforms:
      modelscope:
        pollInterval: 3
        maxAttempts: 60
    publish:
      xiaohongshu: {enabled: true, mcpUrl: "http://127.0.0.1:18060/mcp"}
      douyin: {enabled: true}
      custom:
        myblog: {name: My Blog, url: "https://blog.example/upload", authHeader: "Bearer x"}
"""

from dataclasses import dataclass, field
import copy
import logging
import os

from dotenv import load_dotenv
import yaml

from imagehub.image.registry import ProtocolMode, ProviderDescriptor, ProviderRegistry
from imagehub.image.service import ImageGenerationService
from imagehub.image.sizing import ImageSize
from imagehub.image.client import SyncImageClient
from imagehub.image.storage import ArtifactStore
from imagehub.image.task_poller import TaskPoller
from imagehub.publish.dispatcher import PublishDispatcher
from imagehub.publish.platforms import (
    HttpUploadPlatform,
    PendingPlatform,
    XiaohongshuPlatform,
)

load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("IMAGEHUB_CONFIG", "config/config.yaml")

DEFAULT_OUTPUT_DIR = os.path.join(os.path.expanduser("~"), "generated_images")

DEFAULT_IMAGE_GEN = {
    "outputDir": DEFAULT_OUTPUT_DIR,
    "logDir": None,
    "width": 1024,
    "height": 2048,
    "timeout": 120,
    "pollTimeout": 30,
    "downloadTimeout": 60,
}

# Known image providers. `mode` selects the adapter strategy.
IMAGE_PROVIDERS = {

    "siliconflow": {
        "name": "SiliconFlow",
        "envKey": "SILICONFLOW_API_KEY",
        "url": "https://api.siliconflow.cn/v1",
        "model": "Kwai-Kolors/Kolors",
        "mode": "sync",
        "description": "OpenAI-compatible synchronous image API",
    },

    "openai": {
        "name": "OpenAI",
        "envKey": "OPENAI_API_KEY",
        "url": "https://api.openai.com/v1",
        "model": "dall-e-3",
        "mode": "sync",
        "description": "OpenAI image generations",
    },

    "aliyun": {
        "name": "Aliyun Bailian",
        "envKey": "DASHSCOPE_API_KEY",
        "url": "https://dashscope.aliyuncs.com/api/v1",
        "model": "wanx2.1-t2i-turbo",
        "mode": "async_poll",
        "pollInterval": 2,
        "maxAttempts": 30,
        "description": "DashScope asynchronous text-to-image",
    },

    "modelscope": {
        "name": "ModelScope",
        "envKey": "MODELSCOPE_API_KEY",
        "url": "https://api-inference.modelscope.cn",
        "model": "Qwen/Qwen-Image",
        "mode": "async_poll",
        "pollInterval": 3,
        "maxAttempts": 60,
        "description": "ModelScope asynchronous inference",
    },

    "ai_horde": {
        "name": "AI Horde",
        "envKey": "AI_HORDE_API_KEY",
        "url": "https://aihorde.net/api/v2",
        "model": os.getenv("AI_HORDE_MODEL", "Anything v5"),
        "mode": "async_poll",
        "pollInterval": 2,
        "maxAttempts": 60,
        "description": "Crowdsourced Stable Diffusion cluster",
    },

}


@dataclass
class ImageGenSettings:
    output_dir: str = DEFAULT_OUTPUT_DIR
    log_dir: str = ""
    width: int = 1024
    height: int = 2048
    request_timeout: float = 120.0
    poll_timeout: float = 30.0
    download_timeout: float = 60.0

    def __post_init__(self):
        if not self.log_dir:
            self.log_dir = os.path.join(self.output_dir, "logs")

    @property
    def default_size(self) -> ImageSize:
        return ImageSize(self.width, self.height)


@dataclass
class AppConfig:
    image_gen: ImageGenSettings = field(default_factory=ImageGenSettings)
    providers: dict = field(default_factory=lambda: copy.deepcopy(IMAGE_PROVIDERS))
    publish: dict = field(default_factory=dict)


def _read_yaml(path: str) -> dict:
    if not path or not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"configuration root must be a mapping: {path}")
    return data


def load_config(path: str | None = None, environ=None) -> AppConfig:
    """Build an `AppConfig` from defaults, the YAML file and the environment.

    Args:
        path: YAML file path; defaults to `CONFIG_PATH`. A missing file is
            not an error.
        environ: Mapping used instead of `os.environ` (tests).

    Raises:
        ValueError: Malformed YAML root or non-numeric numeric settings.
        yaml.YAMLError: Unparseable YAML.
    """
    environ = os.environ if environ is None else environ
    data = _read_yaml(path or CONFIG_PATH)

    image_gen = dict(DEFAULT_IMAGE_GEN)
    image_gen.update({k: v for k, v in (data.get("imageGen") or {}).items() if v not in (None, "")})

    env_overrides = {
        "outputDir": "IMAGE_OUTPUT_DIR",
        "logDir": "IMAGE_LOG_DIR",
        "width": "IMAGE_WIDTH",
        "height": "IMAGE_HEIGHT",
    }
    for setting, env_name in env_overrides.items():
        if environ.get(env_name):
            image_gen[setting] = environ[env_name]

    settings = ImageGenSettings(
        output_dir=os.path.expandvars(str(image_gen["outputDir"])),
        log_dir=os.path.expandvars(str(image_gen["logDir"] or "")),
        width=int(image_gen["width"]),
        height=int(image_gen["height"]),
        request_timeout=float(image_gen["timeout"]),
        poll_timeout=float(image_gen["pollTimeout"]),
        download_timeout=float(image_gen["downloadTimeout"]),
    )

    providers = copy.deepcopy(IMAGE_PROVIDERS)
    for key, entry in (data.get("platforms") or {}).items():
        providers.setdefault(key, {}).update(entry or {})

    return AppConfig(image_gen=settings, providers=providers, publish=data.get("publish") or {})


def descriptor_from_entry(key: str, entry: dict, environ=None) -> ProviderDescriptor:
    """Turn one provider config entry into a `ProviderDescriptor`."""
    environ = os.environ if environ is None else environ
    env_key = entry.get("envKey")
    credential = (environ.get(env_key) or "").strip() if env_key else ""

    return ProviderDescriptor(
        key=key,
        name=entry.get("name", key),
        credential=credential,
        base_url=entry.get("url", ""),
        model=entry.get("model", ""),
        mode=ProtocolMode(entry.get("mode", "sync")),
        task_protocol=entry.get("taskProtocol"),
        poll_interval=float(entry.get("pollInterval", 2)),
        max_attempts=int(entry.get("maxAttempts", 30)),
        description=entry.get("description", ""),
    )


def build_provider_registry(config: AppConfig, environ=None) -> ProviderRegistry:
    registry = ProviderRegistry()
    for key, entry in config.providers.items():
        registry.register(descriptor_from_entry(key, entry, environ))
    if not registry.enabled():
        logger.warning("No image provider has a credential configured")
    return registry


def build_generation_service(
    config: AppConfig, registry: ProviderRegistry | None = None, environ=None
) -> ImageGenerationService:
    settings = config.image_gen
    registry = registry or build_provider_registry(config, environ)
    return ImageGenerationService(
        registry=registry,
        store=ArtifactStore(settings.output_dir, timeout=settings.download_timeout),
        sync_client=SyncImageClient(
            default_size=settings.default_size, timeout=settings.request_timeout
        ),
        task_poller=TaskPoller(default_size=settings.default_size, timeout=settings.poll_timeout),
        default_size=settings.default_size,
    )


def build_publish_dispatcher(config: AppConfig, environ=None) -> PublishDispatcher:
    """Register the publish platforms enabled in the `publish` section.

    Xiaohongshu session secrets may also come from `XHS_COOKIES` and
    `XHS_X_SEC_TOKEN`.
    """
    environ = os.environ if environ is None else environ
    publish = config.publish or {}
    dispatcher = PublishDispatcher()

    xhs = publish.get("xiaohongshu") or {}
    if xhs.get("enabled"):
        dispatcher.register(XiaohongshuPlatform(
            mcp_url=xhs.get("mcpUrl"),
            cookies=environ.get("XHS_COOKIES") or xhs.get("cookies", ""),
            x_sec_token=environ.get("XHS_X_SEC_TOKEN") or xhs.get("xSecToken", ""),
        ))

    if (publish.get("douyin") or {}).get("enabled"):
        dispatcher.register(PendingPlatform("douyin", "Douyin"))

    if (publish.get("bilibili") or {}).get("enabled"):
        dispatcher.register(PendingPlatform("bilibili", "Bilibili"))

    for key, entry in (publish.get("custom") or {}).items():
        entry = entry or {}
        dispatcher.register(HttpUploadPlatform(
            key=key,
            name=entry.get("name", key),
            api_url=entry.get("url", ""),
            auth_header=entry.get("authHeader", ""),
        ))

    return dispatcher
