"""Image generation package.

Scope:
    Provider descriptors and registry, the synchronous and task-polling
    provider adapters, artifact download/storage, and the orchestration
    service that selects adapters and fans requests out across providers.

Non-goals:
    - No persistence of generation records.
    - No HTTP route handling (see `imagehub.api`).
"""
