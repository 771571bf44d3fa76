import pytest

from maintflow.triggers.actions.log_action import LogAction
from maintflow.triggers.actions.registry import HandlerRegistry, init_default_handlers
from maintflow.triggers.actions.webhook_action import WebhookNotificationAction


def test_register_and_resolve():
    registry = HandlerRegistry()
    handler = LogAction()
    registry.register("send_log", handler)

    assert registry.resolve("send_log") is handler
    assert "send_log" in registry
    assert len(registry) == 1


def test_resolve_unknown_returns_none():
    assert HandlerRegistry().resolve("send_notification") is None


def test_register_handler_uses_type_name():
    registry = HandlerRegistry()
    registry.register_handler(WebhookNotificationAction())
    assert registry.types() == ["webhook"]


def test_overwrite_warns(caplog):
    registry = HandlerRegistry()
    registry.register("log", LogAction())
    replacement = LogAction()
    registry.register("log", replacement)

    assert registry.resolve("log") is replacement
    assert "already registered" in caplog.text


def test_empty_action_type_rejected():
    with pytest.raises(ValueError):
        HandlerRegistry().register("", LogAction())


def test_frozen_registry_rejects_registration():
    registry = HandlerRegistry()
    registry.register("log", LogAction())
    registry.freeze()

    assert registry.frozen is True
    with pytest.raises(RuntimeError, match="frozen"):
        registry.register("webhook", WebhookNotificationAction())
    assert registry.types() == ["log"]


def test_registries_are_independent():
    first = init_default_handlers(HandlerRegistry())
    second = HandlerRegistry()

    assert first.types() == ["log", "webhook"]
    assert second.types() == []
