"""Tests for dependency injection container."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from remex_mcp.config import Config
from remex_mcp.dependencies import Dependencies
from remex_mcp.services.pool import TransportPool


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(data_dir=tmp_path, results_dir=tmp_path / "processed", max_pool_size=7)


class TestDependencies:
    """Test Dependencies container."""

    def test_from_config_wires_services(self, config: Config):
        deps = Dependencies.from_config(config)

        assert deps.config is config
        assert isinstance(deps.pool, TransportPool)
        assert deps.pool.max_size == 7
        assert deps.executor.registry is deps.registry
        assert deps.stager.pool is deps.pool
        assert deps.pipeline.executor is deps.executor
        assert deps.pipeline.results_dir == config.results_dir

    def test_from_config_loads_registry(self, config: Config):
        config.registry_path.write_text(
            json.dumps([{"id": "a", "name": "A", "type": "ssh", "host": "h1"}])
        )

        deps = Dependencies.from_config(config)

        assert [c.id for c in deps.registry.get_connections()] == ["a"]

    def test_from_config_can_skip_loading(self, config: Config):
        config.registry_path.write_text(
            json.dumps([{"id": "a", "name": "A", "type": "ssh", "host": "h1"}])
        )

        deps = Dependencies.from_config(config, load=False)

        assert deps.registry.get_connections() == []

    def test_create_reads_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("REMEX_KNOWN_HOSTS", "none")
        monkeypatch.setenv("REMEX_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("REMEX_MAX_POOL_SIZE", "3")

        deps = Dependencies.create()

        assert deps.pool.max_size == 3
        assert deps.config.registry_path == tmp_path / "connections.json"

    @pytest.mark.asyncio
    async def test_cleanup_stops_executions_then_closes_pool(self, config: Config):
        deps = Dependencies.from_config(config)
        calls = []
        deps.executor.shutdown = AsyncMock(side_effect=lambda: calls.append("executor"))
        deps.pool.close_all = AsyncMock(side_effect=lambda: calls.append("pool"))

        await deps.cleanup()

        assert calls == ["executor", "pool"]
