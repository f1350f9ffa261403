# src/sentrybridge/sink/factory.py
"""Factory functions for creating a SentrySink from configuration.

This module is the glue between SinkSettings and a running SentrySink:
1. Discovering transport classes via pluggy hooks
2. Resolving the DSN and configuring the selected transport
3. Creating the SentrySink around the configured transport

Usage:
    from sentrybridge.core.config import load_settings
    from sentrybridge.sink.factory import create_sentry_sink

    settings = load_settings(Path("sentrybridge.yaml"))
    sink = create_sentry_sink(settings, ignore_errors=[TimeoutError])
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pluggy
import structlog

from sentrybridge.core.config import SinkSettings, resolve_dsn
from sentrybridge.errors import TransportError
from sentrybridge.sink.sentry_sink import SentrySink
from sentrybridge.transports import BuiltinTransportsPlugin
from sentrybridge.transports.hookspecs import PROJECT_NAME, SentryBridgeTransportSpec
from sentrybridge.transports.protocols import TransportProtocol

logger = structlog.get_logger(__name__)

# Settings forwarded to every transport's configure()
_CLIENT_OPTION_FIELDS = ("environment", "release", "server_name", "sample_rate", "attach_stacktrace")


def _resolve_transport_name(transport_class: type[TransportProtocol]) -> str:
    """Resolve a transport's name from its class-level _name or an instance.

    Raises:
        TransportError: If the resolved name is not a non-empty string.
    """
    class_name = transport_class.__name__
    if "_name" in transport_class.__dict__:
        name_hint = transport_class.__dict__["_name"]
        if type(name_hint) is str and name_hint != "":
            return name_hint
        raise TransportError(
            class_name,
            f"Transport class attribute _name must be a non-empty string, got {name_hint!r}",
        )

    try:
        resolved_name = transport_class().name
    except Exception as e:
        raise TransportError(class_name, f"Failed to instantiate transport class during discovery: {e}") from e
    if type(resolved_name) is not str or resolved_name == "":
        raise TransportError(class_name, f"Transport name must be a non-empty string, got {resolved_name!r}")
    return resolved_name


def discover_transports(transport_plugins: Iterable[Any] = ()) -> dict[str, type[TransportProtocol]]:
    """Build the transport name -> class registry via pluggy hooks.

    Registers the built-in transports plus any plugin objects provided by the
    caller, then calls every sentrybridge_get_transports hook.

    Raises:
        TransportError: If a plugin fails validation, a hook misbehaves, or
            two transports share a name.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(SentryBridgeTransportSpec)

    for plugin in [BuiltinTransportsPlugin(), *list(transport_plugins)]:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise TransportError(
                "transport_plugins",
                f"Invalid transport plugin {type(plugin).__name__}: {e}",
            ) from e

    registry: dict[str, type[TransportProtocol]] = {}
    for hook_impl in plugin_manager.hook.sentrybridge_get_transports.get_hookimpls():
        plugin_name = type(hook_impl.plugin).__name__
        try:
            transports = hook_impl.function()
        except Exception as e:
            raise TransportError(
                "transport_plugins",
                f"Transport plugin {plugin_name} failed in sentrybridge_get_transports: {e}",
            ) from e
        if transports is None or type(transports) in (str, bytes):
            raise TransportError(
                "transport_plugins",
                f"sentrybridge_get_transports in plugin {plugin_name} returned "
                f"{type(transports).__name__}; expected iterable of transport classes",
            )

        for transport_class in transports:
            name = _resolve_transport_name(transport_class)
            if name in registry:
                raise TransportError(
                    name,
                    f"Duplicate transport name '{name}' discovered: "
                    f"{registry[name].__name__} and {transport_class.__name__}",
                )
            registry[name] = transport_class

    return registry


def build_transport_options(settings: SinkSettings, dsn: str) -> dict[str, Any]:
    """Client options handed to TransportProtocol.configure()."""
    options: dict[str, Any] = {"dsn": dsn}
    for field_name in _CLIENT_OPTION_FIELDS:
        options[field_name] = getattr(settings, field_name)
    options.update(settings.transport_options)
    return options


def create_sentry_sink(
    settings: SinkSettings,
    *,
    dsn: str | None = None,
    transport_plugins: Iterable[Any] = (),
    **sink_options: Any,
) -> SentrySink:
    """Create a started SentrySink from settings.

    Args:
        settings: Validated sink settings
        dsn: DSN override; falls back to settings.dsn, then SENTRY_DSN
        transport_plugins: Extra plugin objects providing sentrybridge_get_transports
        **sink_options: Keyword arguments forwarded to SentrySink
            (fingerprinter, before_send, ignore_errors, custom_sampler, ...)

    Returns:
        SentrySink with its worker running

    Raises:
        ConfigurationError: If no DSN can be resolved
        TransportError: If discovery fails, the transport name is unknown,
            or the transport rejects its options
    """
    resolved_dsn = resolve_dsn(dsn or settings.dsn)
    registry = discover_transports(transport_plugins)

    try:
        transport_class = registry[settings.transport]
    except KeyError:
        raise TransportError(
            settings.transport,
            f"Unknown transport. Available transports: {sorted(registry)}",
        ) from None

    transport = transport_class()
    options = build_transport_options(settings, resolved_dsn)
    transport.configure(options)
    logger.debug(
        "Transport configured",
        transport=settings.transport,
        options_keys=sorted(k for k in options if k != "dsn"),
    )
    return SentrySink(settings, transport, **sink_options)
