"""
Backend Factory - Creates training service backends by kind.

This factory enables backend creation from configuration without needing
to import backend classes directly.
"""

from typing import Optional

from .base import BaseInstanceBackend, ClusterBackend
from .classifier import HTTPClassifierBackend
from .cluster import HTTPClusterBackend
from .ranker import HTTPRankerBackend
from ..config import BackendConfig, Config, require_backend
from ..exceptions import ConfigurationError


class BackendFactory:
    """
    Factory for creating backend instances.

    Usage:
        # From config
        factory = BackendFactory()
        backend = factory.create_from_config("classifier")

        # With explicit config
        backend_config = BackendConfig(name="ranker", url="https://...")
        backend = factory.create("ranker", backend_config, collection_name="docs")
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize the factory.

        Args:
            config: Optional Config instance. If not provided, creates a new one.
        """
        self.config = config or Config()

    def create(
        self,
        kind: str,
        backend_config: BackendConfig,
        collection_name: Optional[str] = None,
    ) -> BaseInstanceBackend:
        """
        Create a backend from a BackendConfig.

        Args:
            kind: 'classifier' or 'ranker'
            backend_config: BackendConfig with URL and credentials
            collection_name: Search collection (ranker only)

        Returns:
            BaseInstanceBackend instance

        Raises:
            ConfigurationError: If kind is unknown
        """
        kind = kind.lower()

        if kind == "classifier":
            return HTTPClassifierBackend(backend_config)
        elif kind == "ranker":
            return HTTPRankerBackend(
                backend_config, collection_name=collection_name or "default-collection"
            )
        else:
            raise ConfigurationError(
                f"Unknown backend kind: {kind}. "
                f"Available kinds: {', '.join(self.get_available_backends())}"
            )

    def create_from_config(
        self, kind: str, collection_name: Optional[str] = None
    ) -> BaseInstanceBackend:
        """
        Create a backend from application configuration.

        Args:
            kind: 'classifier' or 'ranker'
            collection_name: Search collection (ranker only); defaults to the
                configured ``RANKER_COLLECTION``

        Returns:
            BaseInstanceBackend instance

        Raises:
            ConfigurationError: If kind is unknown or not configured
        """
        backend_config = require_backend(kind, self.config)
        if kind.lower() == "ranker" and collection_name is None:
            collection_name = self.config.get_manager_config("ranker").collection_name
        return self.create(kind, backend_config, collection_name=collection_name)

    def create_cluster_backend(self) -> ClusterBackend:
        """Create the search cluster backend from the ranker service settings."""
        return HTTPClusterBackend(require_backend("ranker", self.config))

    @staticmethod
    def get_available_backends() -> list[str]:
        """Return list of supported backend kinds."""
        return ["classifier", "ranker"]

    def get_configured_backends(self) -> list[str]:
        """Return list of backend kinds that have a service URL configured."""
        return self.config.get_available_backends()
