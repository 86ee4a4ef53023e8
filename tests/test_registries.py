from typing import Any

import pytest

from helpdesk.v1.core.registries import JobRegistry, Registry, job_registry


class MockJobHandler:
    def __init__(self):
        self.payloads: list[dict[str, Any]] = []

    async def handle(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    # Test empty registry
    assert registry.list() == []
    assert registry.has("test_impl") is False

    # Test register and get
    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.has("test_impl") is True
    assert registry.list() == ["test_impl"]

    # Test KeyError for missing implementation
    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_multiple_implementations():
    """Test registry with multiple implementations."""
    registry = Registry[str]("Test")

    registry.register("impl1", "value1")
    registry.register("impl2", "value2")
    registry.register("impl3", "value3")

    assert set(registry.list()) == {"impl1", "impl2", "impl3"}
    assert registry.get("impl1") == "value1"
    assert registry.get("impl2") == "value2"
    assert registry.get("impl3") == "value3"


async def test_job_registry():
    """Test job registry with mock handler."""
    registry = JobRegistry()
    handler = MockJobHandler()
    registry.register("send_email", handler)

    retrieved = registry.get("send_email")
    assert retrieved is handler

    await retrieved.handle({"to": "user@example.com"})
    assert handler.payloads == [{"to": "user@example.com"}]

    with pytest.raises(KeyError, match="No job implementation registered with name"):
        registry.get("unknown_job")


def test_global_job_registry_is_singleton():
    """Test that the global job registry is a JobRegistry instance."""
    from helpdesk.v1.core import registries

    assert isinstance(job_registry, JobRegistry)
    assert registries.job_registry is job_registry


def test_registry_freeze():
    """Test that a frozen registry rejects new registrations."""
    registry = JobRegistry()
    registry.register("first", MockJobHandler())
    registry.freeze()

    assert registry.is_frozen() is True
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("second", MockJobHandler())

    # Lookups still work
    assert registry.has("first")


def test_registry_overwrites_implementation():
    """Test that registering the same name overwrites previous implementation."""
    registry = Registry[str]("Test")

    registry.register("same_name", "first_value")
    assert registry.get("same_name") == "first_value"

    registry.register("same_name", "second_value")
    assert registry.get("same_name") == "second_value"
    assert registry.list() == ["same_name"]  # Only one entry
