"""Publish package.

Scope:
    Platform adapters that push a finished artifact to downstream targets,
    and the dispatcher that invokes one or many of them and collects
    independent per-platform outcomes.
"""
