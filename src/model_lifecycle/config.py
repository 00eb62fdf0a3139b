"""
Configuration management for Model Lifecycle.

Loads configuration from environment variables (typically from a .env file).
Uses python-dotenv to load .env automatically.

Usage:
    from model_lifecycle.config import config

    # Remote training service credentials
    classifier_backend = config.get_backend_config("classifier")

    # Lifecycle settings (instance name, retention limit, polling)
    classifier_manager = config.get_manager_config("classifier")

    # Database config
    db_url = config.database.connection_string
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Look for .env in project root (parent of src/)
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

BACKEND_KINDS = ("classifier", "ranker")

_DEFAULT_URLS = {
    "classifier": "",
    "ranker": "",
}

_DEFAULT_NAMES = {
    "classifier": "default-classifier",
    "ranker": "default-ranker",
}

_DEFAULT_MAX_INSTANCES = {
    "classifier": 3,
    "ranker": 1,
}


def truthy(value: Any) -> bool:
    """Interpret common string spellings of a boolean flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class BackendConfig:
    """Connection settings for one kind of remote training service."""
    name: str
    url: str
    api_key: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    version: str = "v1"
    timeout: float = 30.0

    def __post_init__(self):
        """Validate that required fields are present."""
        if self.name not in BACKEND_KINDS:
            raise ConfigurationError(f"Unknown backend kind: {self.name}")
        if not self.url:
            raise ConfigurationError(
                f"Service URL not set for {self.name} backend. "
                f"Please set the appropriate environment variable."
            )


# Training data handed to the launcher: a blob, a readable stream, or a
# zero-argument callable producing either (or an awaitable of either).
TrainingDataSource = Union[str, bytes, Callable[[], Any], Any]


@dataclass
class ManagerConfig:
    """Lifecycle settings for one logical instance name."""
    kind: str
    instance_name: str
    max_instances: int = 3
    language: str = "en"
    collection_name: Optional[str] = None
    save_training_data: bool = True
    poll_interval_seconds: float = 60.0
    max_wait_seconds: Optional[float] = None
    fail_on_retention_error: bool = True
    auto_approve: bool = False
    training_data: Optional[TrainingDataSource] = field(default=None, repr=False)

    def __post_init__(self):
        if self.kind not in BACKEND_KINDS:
            raise ConfigurationError(f"Unknown backend kind: {self.kind}")
        if not self.instance_name:
            raise ConfigurationError("instance_name must not be empty")
        if self.max_instances < 1:
            raise ConfigurationError(
                f"max_instances must be at least 1, got {self.max_instances}"
            )
        if self.poll_interval_seconds < 0:
            raise ConfigurationError("poll_interval_seconds must not be negative")


@dataclass
class ClusterConfig:
    """Settings for the search cluster that hosts the ranker's collection."""
    cluster_name: str = "default-cluster"
    config_name: str = "default-config"
    collection_name: str = "default-collection"
    config_zip_path: Optional[Path] = None
    documents_path: Optional[Path] = None
    cluster_size: Optional[int] = None
    poll_interval_seconds: float = 60.0
    max_wait_seconds: Optional[float] = None

    def __post_init__(self):
        if not self.cluster_name:
            raise ConfigurationError("cluster_name must not be empty")
        if self.poll_interval_seconds < 0:
            raise ConfigurationError("poll_interval_seconds must not be negative")


@dataclass
class DatabaseConfig:
    """Database configuration."""
    connection_string: str

    def __post_init__(self):
        """Provide default if not set."""
        if not self.connection_string:
            self.connection_string = "sqlite:///model_lifecycle.db"


class Config:
    """
    Application configuration loaded from environment variables.

    Environment variables can be set:
    1. In a .env file in the project root
    2. In the system environment
    3. In a container/deployment environment
    """

    def __init__(self):
        """Load configuration from environment."""
        self.database = DatabaseConfig(
            connection_string=os.getenv("DATABASE_URL", "sqlite:///model_lifecycle.db")
        )

        # Backend configurations (lazy-loaded to avoid requiring all URLs)
        self._backend_configs = {}

    def get_backend_config(self, kind: str) -> BackendConfig:
        """
        Get connection settings for a backend kind.

        Args:
            kind: 'classifier' or 'ranker'

        Returns:
            BackendConfig with URL, credentials and timeout

        Raises:
            ConfigurationError: If the kind is unknown or its URL is missing
        """
        kind = kind.lower()

        if kind in self._backend_configs:
            return self._backend_configs[kind]

        if kind not in BACKEND_KINDS:
            raise ConfigurationError(f"Unknown backend kind: {kind}")

        prefix = kind.upper()
        backend_config = BackendConfig(
            name=kind,
            url=os.getenv(f"{prefix}_URL", _DEFAULT_URLS[kind]),
            api_key=os.getenv(f"{prefix}_API_KEY") or None,
            username=os.getenv(f"{prefix}_USERNAME") or None,
            password=os.getenv(f"{prefix}_PASSWORD") or None,
            version=os.getenv(f"{prefix}_VERSION", "v1"),
            timeout=_env_float("REMOTE_TIMEOUT_SECONDS", 30.0),
        )

        self._backend_configs[kind] = backend_config
        return backend_config

    def get_manager_config(self, kind: str, **overrides: Any) -> ManagerConfig:
        """
        Build lifecycle settings for a backend kind.

        Args:
            kind: 'classifier' or 'ranker'
            **overrides: Explicit values that win over the environment
                (e.g. ``instance_name="faq"``).

        Returns:
            ManagerConfig
        """
        kind = kind.lower()
        if kind not in BACKEND_KINDS:
            raise ConfigurationError(f"Unknown backend kind: {kind}")

        prefix = kind.upper()
        max_env = "MAX_CLASSIFIERS" if kind == "classifier" else "MAX_RANKERS"
        settings = dict(
            kind=kind,
            instance_name=os.getenv(f"{prefix}_NAME", _DEFAULT_NAMES[kind]),
            max_instances=_env_int(max_env, _DEFAULT_MAX_INSTANCES[kind]),
            language=os.getenv(f"{prefix}_LANGUAGE", "en"),
            collection_name=(
                os.getenv("RANKER_COLLECTION", "default-collection")
                if kind == "ranker" else None
            ),
            save_training_data=truthy(os.getenv("SAVE_TRAINING_DATA", "true")),
            poll_interval_seconds=_env_float("TRAINING_POLL_INTERVAL", 60.0),
            max_wait_seconds=_env_float("TRAINING_MAX_WAIT", None),
            fail_on_retention_error=truthy(os.getenv("FAIL_ON_RETENTION_ERROR", "true")),
            auto_approve=truthy(os.getenv("CLASSIFIER_AUTO_APPROVE", "false")),
        )
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return ManagerConfig(**settings)

    def get_cluster_config(self, **overrides: Any) -> ClusterConfig:
        """
        Build search cluster settings for the ranker.

        Args:
            **overrides: Explicit values that win over the environment
                (e.g. ``cluster_name="kb"``).

        Returns:
            ClusterConfig
        """
        config_zip = os.getenv("RANKER_CONFIG_ZIP")
        documents = os.getenv("RANKER_DOCUMENTS")
        settings = dict(
            cluster_name=os.getenv("RANKER_CLUSTER_NAME", "default-cluster"),
            config_name=os.getenv("RANKER_CONFIG_NAME", "default-config"),
            collection_name=os.getenv("RANKER_COLLECTION", "default-collection"),
            config_zip_path=Path(config_zip) if config_zip else None,
            documents_path=Path(documents) if documents else None,
            cluster_size=_env_int("RANKER_CLUSTER_SIZE", None),
            poll_interval_seconds=_env_float("TRAINING_POLL_INTERVAL", 60.0),
            max_wait_seconds=_env_float("TRAINING_MAX_WAIT", None),
        )
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return ClusterConfig(**settings)

    def get_available_backends(self) -> list[str]:
        """
        Get list of backend kinds that have a service URL configured.

        Returns:
            List of backend kinds ready to use
        """
        available = []
        for kind in BACKEND_KINDS:
            try:
                self.get_backend_config(kind)
                available.append(kind)
            except ConfigurationError:
                # URL not set - skip this backend
                pass
        return available


# Global config instance
config = Config()


def require_backend(kind: str, app_config: Optional[Config] = None) -> BackendConfig:
    """
    Get backend config, raising a helpful error if not configured.

    Args:
        kind: Backend kind to load
        app_config: Config to read from (defaults to the global one)

    Returns:
        BackendConfig

    Raises:
        ConfigurationError: With instructions on how to configure the backend
    """
    try:
        return (app_config or config).get_backend_config(kind)
    except ConfigurationError as e:
        raise ConfigurationError(
            f"\n{'='*60}\n"
            f"Backend '{kind}' is not configured.\n\n"
            f"To use {kind}, set these environment variables:\n"
            f"{_get_backend_instructions(kind)}\n"
            f"You can set these in a .env file in the project root.\n"
            f"{'='*60}\n"
        ) from e


def _get_backend_instructions(kind: str) -> str:
    """Get environment variable instructions for a backend."""
    instructions = {
        "classifier": """
  CLASSIFIER_URL=https://your-training-service.example.com/api
  CLASSIFIER_USERNAME=your-username   (or CLASSIFIER_API_KEY=your-key)
  CLASSIFIER_PASSWORD=your-password
  CLASSIFIER_NAME=default-classifier
        """,
        "ranker": """
  RANKER_URL=https://your-training-service.example.com/api
  RANKER_USERNAME=your-username   (or RANKER_API_KEY=your-key)
  RANKER_PASSWORD=your-password
  RANKER_NAME=default-ranker
  RANKER_COLLECTION=default-collection
  RANKER_CLUSTER_NAME=default-cluster
  RANKER_CONFIG_ZIP=path/to/solr-config.zip
  RANKER_DOCUMENTS=path/to/documents.json
        """,
    }
    return instructions.get(kind, "  (Unknown backend)")
