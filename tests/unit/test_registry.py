"""Unit tests for provider descriptors and the provider registry."""

import pytest

from imagehub.image.errors import ProviderNotFoundError
from imagehub.image.registry import ProviderRegistry


class TestProviderDescriptor:

    def test_enabled_requires_credential(self, make_descriptor):
        assert make_descriptor(credential="sk-1").enabled
        assert not make_descriptor(credential="").enabled
        assert not make_descriptor(credential="   ").enabled

    def test_protocol_name_defaults_to_key(self, make_descriptor):
        assert make_descriptor(key="aliyun").protocol_name == "aliyun"
        assert make_descriptor(key="wanx", task_protocol="aliyun").protocol_name == "aliyun"


class TestProviderRegistry:

    def test_enabled_filters_and_keeps_order(self, make_descriptor):
        registry = ProviderRegistry([
            make_descriptor("a"),
            make_descriptor("b", credential=""),
            make_descriptor("c"),
        ])
        assert [d.key for d in registry.enabled()] == ["a", "c"]
        assert registry.keys() == ["a", "b", "c"]

    def test_lookup_returns_enabled_descriptor(self, make_descriptor):
        registry = ProviderRegistry([make_descriptor("a")])
        assert registry.lookup("a").key == "a"

    def test_lookup_missing_raises(self, make_descriptor):
        registry = ProviderRegistry([make_descriptor("a")])
        with pytest.raises(ProviderNotFoundError):
            registry.lookup("zzz")

    def test_lookup_disabled_raises(self, make_descriptor):
        registry = ProviderRegistry([make_descriptor("a", credential="")])
        with pytest.raises(ProviderNotFoundError) as excinfo:
            registry.lookup("a")
        assert excinfo.value.key == "a"

    def test_register_is_last_write_wins(self, make_descriptor):
        registry = ProviderRegistry([make_descriptor("a", model="old"), make_descriptor("b")])
        registry.register(make_descriptor("a", model="new"))
        assert registry.lookup("a").model == "new"
        assert registry.keys() == ["a", "b"]
        assert len(registry) == 2
        assert "a" in registry
