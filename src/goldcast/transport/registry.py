"""Transport and price source registry."""

from __future__ import annotations

import importlib
import logging

from goldcast.config_loader import AppConfig
from goldcast.constants import SourceKind
from goldcast.data.value_source import ValueSource
from goldcast.transport.base import SessionTransport

logger = logging.getLogger(__name__)


def _import_object(path: str):
    """Resolve ``package.module:Name``."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Transport must be 'sim' or 'package.module:ClassName', got: {path}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"{module_name} has no attribute {attr}") from e


def get_transport(config: AppConfig) -> SessionTransport:
    """Factory function to create the configured session transport."""
    kind = config.transport.kind

    if kind == "sim":
        from goldcast.transport.sim import SimTransport

        logger.info("Using SimTransport (in-memory session)")
        return SimTransport()

    transport_cls = _import_object(kind)
    transport = transport_cls(config.transport)
    if not isinstance(transport, SessionTransport):
        raise TypeError(f"{kind} is not a SessionTransport")
    logger.info(f"Using transport {kind}")
    return transport


def get_value_source(config: AppConfig) -> ValueSource:
    """Factory function to create the configured price source."""
    if config.source.kind == SourceKind.SIM:
        from goldcast.data.sim_source import SimValueSource

        logger.info("Using SimValueSource (random walk)")
        return SimValueSource()

    from goldcast.data.treasury import TreasuryRateSource

    logger.info(f"Using TreasuryRateSource ({config.source.url})")
    return TreasuryRateSource(config.source.url)
