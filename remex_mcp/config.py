"""Configuration management for Remex MCP.

All settings can be overridden with ``REMEX_*`` environment variables via
``Config.from_env()``.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Remex MCP configuration."""

    # Persistence and local results
    data_dir: Path = field(default_factory=lambda: Path("data"))
    results_dir: Path = field(default_factory=lambda: Path("uploads") / "processed")
    results_url_prefix: str = "/uploads/processed"

    # Remote script invocation
    interpreter: str = "powershell.exe"
    interpreter_args: list[str] = field(
        default_factory=lambda: ["-NoProfile", "-ExecutionPolicy", "Bypass", "-File"]
    )
    quote_style: str = "powershell"  # "powershell" or "posix"
    default_script_path: str | None = None
    legacy_script_path: str | None = None
    remote_input_dir: str | None = None
    remote_output_dir: str | None = None

    # SSH transport
    default_user: str | None = None
    known_hosts: str | None = None
    strict_host_key_checking: bool = True
    max_pool_size: int = 100

    # Handshakes
    probe_timeout: float = 2.0
    tunnel_attempts: int = 5
    tunnel_interval: float = 1.0

    # Server
    transport: str = "http"  # "http" or "stdio"
    http_host: str = "0.0.0.0"
    http_port: int = 8000
    api_prefix: str = "/api/remote-execution"

    # Logging
    log_level: str = "INFO"
    log_colors: bool = True
    log_payloads: bool = False
    slow_threshold_ms: int = 1000
    include_traceback: bool = False

    @property
    def registry_path(self) -> Path:
        """Location of the persisted connection registry."""
        return self.data_dir / "connections.json"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config instance with values from environment
        """
        config = cls(
            data_dir=Path(os.getenv("REMEX_DATA_DIR", "data")),
            results_dir=Path(
                os.getenv("REMEX_RESULTS_DIR", str(Path("uploads") / "processed"))
            ),
            results_url_prefix=os.getenv(
                "REMEX_RESULTS_URL_PREFIX", "/uploads/processed"
            ).rstrip("/"),
            interpreter=os.getenv("REMEX_INTERPRETER", "powershell.exe"),
            quote_style=cls._get_choice(
                "REMEX_QUOTE_STYLE", ("powershell", "posix"), "powershell"
            ),
            default_script_path=os.getenv("REMEX_SCRIPT_PATH") or None,
            legacy_script_path=os.getenv("REMEX_LEGACY_SCRIPT_PATH") or None,
            remote_input_dir=os.getenv("REMEX_REMOTE_INPUT_DIR") or None,
            remote_output_dir=os.getenv("REMEX_REMOTE_OUTPUT_DIR") or None,
            default_user=os.getenv("REMEX_SSH_USER") or None,
            known_hosts=cls._get_known_hosts(),
            strict_host_key_checking=cls._get_bool(
                "REMEX_STRICT_HOST_KEY_CHECKING", True
            ),
            max_pool_size=cls._get_int("REMEX_MAX_POOL_SIZE", 100),
            probe_timeout=cls._get_float("REMEX_PROBE_TIMEOUT", 2.0),
            tunnel_attempts=cls._get_int("REMEX_TUNNEL_ATTEMPTS", 5),
            tunnel_interval=cls._get_float("REMEX_TUNNEL_INTERVAL", 1.0),
            transport=cls._get_choice("REMEX_TRANSPORT", ("http", "stdio"), "http"),
            http_host=os.getenv("REMEX_HTTP_HOST", "0.0.0.0"),
            http_port=cls._get_int("REMEX_HTTP_PORT", 8000),
            log_level=os.getenv("REMEX_LOG_LEVEL", "INFO").upper(),
            log_colors=cls._get_bool("REMEX_LOG_COLORS", True),
            log_payloads=cls._get_bool("REMEX_LOG_PAYLOADS", False),
            slow_threshold_ms=cls._get_int("REMEX_SLOW_THRESHOLD_MS", 1000),
            include_traceback=cls._get_bool("REMEX_INCLUDE_TRACEBACK", False),
        )

        if args := os.getenv("REMEX_INTERPRETER_ARGS"):
            config.interpreter_args = args.split()

        if config.max_pool_size <= 0:
            logger.warning(
                "REMEX_MAX_POOL_SIZE must be > 0, got %d. Using default: 100",
                config.max_pool_size,
            )
            config.max_pool_size = 100

        logger.debug(
            "Config loaded: data_dir=%s, results_dir=%s, interpreter=%s, "
            "max_pool_size=%d",
            config.data_dir,
            config.results_dir,
            config.interpreter,
            config.max_pool_size,
        )
        return config

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer from environment, falling back on bad values."""
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid int for %s: %s, using default %d", key, value, default)
            return default

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        """Get float from environment, falling back on bad values."""
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning("Invalid float for %s: %s, using default %s", key, value, default)
            return default

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        value = os.getenv(key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _get_choice(key: str, choices: tuple[str, ...], default: str) -> str:
        value = os.getenv(key, "").lower()
        return value if value in choices else default

    @staticmethod
    def _get_known_hosts() -> str | None:
        """Resolve the known_hosts file used for host key verification.

        Environment: REMEX_KNOWN_HOSTS
        Default: ~/.ssh/known_hosts when it exists
        Special value: "none" disables verification (MITM vulnerable)

        Raises:
            FileNotFoundError: If an explicitly configured file doesn't exist
        """
        value = os.getenv("REMEX_KNOWN_HOSTS", "").strip()

        if value.lower() == "none":
            logger.critical(
                "SSH host key verification DISABLED (REMEX_KNOWN_HOSTS=none). "
                "Connections are vulnerable to man-in-the-middle attacks."
            )
            return None

        if value:
            custom_path = Path(os.path.expanduser(value))
            if not custom_path.exists():
                raise FileNotFoundError(
                    f"Configured known_hosts file not found: {custom_path}\n"
                    f"Create it with: ssh-keyscan <hostname> >> {custom_path}\n"
                    f"or disable verification with REMEX_KNOWN_HOSTS=none"
                )
            return str(custom_path)

        default = Path.home() / ".ssh" / "known_hosts"
        if default.exists():
            return str(default)

        logger.warning(
            "~/.ssh/known_hosts not found; host key verification disabled. "
            "Set REMEX_KNOWN_HOSTS to enable it."
        )
        return None
