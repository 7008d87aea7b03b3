"""Tests for transport/source factories and the simulated rate source."""

from decimal import Decimal

import pytest

from goldcast.config_loader import AppConfig
from goldcast.constants import SourceKind
from goldcast.data.sim_source import SimValueSource
from goldcast.data.treasury import TreasuryRateSource
from goldcast.data.value_source import ValueSourceError
from goldcast.transport.registry import get_transport, get_value_source
from goldcast.transport.sim import SimTransport


class TestFactories:
    def test_sim_transport(self):
        assert isinstance(get_transport(AppConfig()), SimTransport)

    def test_transport_path_must_name_a_class(self):
        config = AppConfig()
        config.transport.kind = "not-a-path"

        with pytest.raises(ValueError, match="package.module:ClassName"):
            get_transport(config)

    def test_transport_path_missing_attribute(self):
        config = AppConfig()
        config.transport.kind = "goldcast.transport.sim:NoSuchTransport"

        with pytest.raises(ValueError, match="no attribute"):
            get_transport(config)

    def test_transport_path_wrong_type(self):
        config = AppConfig()
        config.transport.kind = "goldcast.constants:APP_NAME"

        with pytest.raises(TypeError, match="not a SessionTransport"):
            get_transport(config)

    def test_value_sources(self):
        config = AppConfig()
        assert isinstance(get_value_source(config), TreasuryRateSource)

        config.source.kind = SourceKind.SIM
        assert isinstance(get_value_source(config), SimValueSource)


class TestSimValueSource:
    @pytest.mark.asyncio
    async def test_seeded_walk_is_reproducible(self):
        first = SimValueSource(seed=7)
        second = SimValueSource(seed=7)

        a = [(await first.fetch(1.0)).primary for _ in range(10)]
        b = [(await second.fetch(1.0)).primary for _ in range(10)]

        assert a == b
        assert first.fetch_count == 10

    @pytest.mark.asyncio
    async def test_fixed_spread(self):
        source = SimValueSource(spread=Decimal("40000"), seed=1)

        snapshot = await source.fetch(1.0)

        assert snapshot.primary - snapshot.secondary == Decimal("40000")

    @pytest.mark.asyncio
    async def test_failure(self):
        source = SimValueSource(failure_rate=1.0)

        with pytest.raises(ValueSourceError):
            await source.fetch(1.0)

    @pytest.mark.asyncio
    async def test_latency_over_timeout(self):
        source = SimValueSource(latency=0.5)

        with pytest.raises(ValueSourceError, match="Timed out"):
            await source.fetch(0.01)
