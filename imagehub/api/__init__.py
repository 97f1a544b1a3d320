"""Interface adapters package.

Architectural role:
    Exposes the generation and publish orchestration APIs through HTTP and
    CLI entrypoints, and owns process logging setup.
"""
