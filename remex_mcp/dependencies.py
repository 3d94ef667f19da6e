"""Dependency injection container for Remex MCP.

Every service is built once at startup and handed explicitly to the MCP
tools and HTTP routes; nothing is kept in module-level state.
"""

from dataclasses import dataclass

from remex_mcp.config import Config
from remex_mcp.services.executor import ScriptExecutor
from remex_mcp.services.handshake import build_handshakes
from remex_mcp.services.launcher import SSHProcessLauncher
from remex_mcp.services.pipeline import PipelineOrchestrator
from remex_mcp.services.pool import TransportPool
from remex_mcp.services.registry import ConnectionRegistry
from remex_mcp.services.stager import FileStager


@dataclass
class Dependencies:
    """Container for Remex MCP services.

    Example:
        deps = Dependencies.create()
        execution_id = await deps.executor.execute_script(conn_id, script, {})
    """

    config: Config
    pool: TransportPool
    registry: ConnectionRegistry
    executor: ScriptExecutor
    stager: FileStager
    pipeline: PipelineOrchestrator

    @classmethod
    def create(cls) -> "Dependencies":
        """Create dependencies from ``REMEX_*`` environment configuration."""
        return cls.from_config(Config.from_env())

    @classmethod
    def from_config(cls, config: Config, load: bool = True) -> "Dependencies":
        """Create dependencies with custom configuration.

        Args:
            config: Config instance
            load: Whether to load persisted connections

        Returns:
            Dependencies with all services wired together
        """
        pool = TransportPool(
            max_size=config.max_pool_size,
            known_hosts=config.known_hosts,
            strict_host_key_checking=config.strict_host_key_checking,
        )
        registry = ConnectionRegistry(
            config.registry_path,
            build_handshakes(pool, config),
            pool=pool,
        )
        executor = ScriptExecutor(
            registry,
            SSHProcessLauncher(pool, config.default_user),
            interpreter=config.interpreter,
            interpreter_args=config.interpreter_args,
            quote_style=config.quote_style,
        )
        # Disconnect stops bound executions before the status flips
        registry.add_disconnect_hook(executor.stop_executions_for)

        stager = FileStager(registry, pool, config.default_user)
        pipeline = PipelineOrchestrator(
            stager,
            executor,
            results_dir=config.results_dir,
            results_url_prefix=config.results_url_prefix,
        )
        if load:
            registry.load()

        return cls(
            config=config,
            pool=pool,
            registry=registry,
            executor=executor,
            stager=stager,
            pipeline=pipeline,
        )

    async def cleanup(self) -> None:
        """Stop running executions and close all transports."""
        await self.executor.shutdown()
        await self.pool.close_all()
