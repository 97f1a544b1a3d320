"""imagehub: multi-provider image generation and publishing.

Package layout:
    - `image`: provider registry, sync/async provider adapters, artifact
      storage, and the generation orchestrator.
    - `publish`: publish platform adapters and the dispatcher.
    - `config`: environment/YAML driven runtime configuration.
    - `api`: HTTP and CLI entrypoints plus logging setup.
"""
