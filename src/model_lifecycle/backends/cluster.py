"""
HTTP Search Cluster Backend.

Provisions the search clusters whose collections rankers score. Uses the
same service URL and credentials as the ranker backend.

    POST   /v1/solr_clusters                                    create
    GET    /v1/solr_clusters                                    list
    GET    /v1/solr_clusters/{id}                               status
    DELETE /v1/solr_clusters/{id}                               delete
    POST   /v1/solr_clusters/{id}/config/{config}               upload config zip
    POST   /v1/solr_clusters/{id}/solr/admin/collections        create collection
    POST   /v1/solr_clusters/{id}/solr/{collection}/update      index + commit
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from .base import ClusterBackend, Instance, parse_timestamp
from .http_client import TrainingServiceClient
from ..config import BackendConfig
from ..exceptions import RemoteServiceError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class HTTPClusterBackend(ClusterBackend):
    """Cluster backend for a REST retrieve-and-rank style service."""

    def __init__(
        self,
        backend_config: BackendConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._http = TrainingServiceClient(backend_config, client=client)
        logger.info("Initialized HTTPClusterBackend (url=%s)", self._http.base_url)

    def _to_instance(self, payload: Dict[str, Any]) -> Instance:
        try:
            cluster_id = payload["solr_cluster_id"]
            created = parse_timestamp(payload["created"])
        except (KeyError, ValueError) as e:
            raise RemoteServiceError(
                f"Malformed cluster record: {e}", payload=payload
            ) from e
        return Instance(
            id=cluster_id,
            name=payload.get("cluster_name", ""),
            status=self.normalize_status(payload.get("solr_cluster_status")),
            created_at=created,
            kind=self.kind,
            raw=dict(payload),
        )

    def _cluster_path(self, cluster_id: str, *parts: str) -> str:
        return self._http.path("solr_clusters", cluster_id, *parts)

    async def create_cluster(self, name: str, size: Optional[int] = None) -> Instance:
        body: Dict[str, Any] = {"cluster_name": name}
        if size is not None:
            body["cluster_size"] = str(size)
        payload = await self._http.request("POST", self._http.path("solr_clusters"), json=body)
        return self._to_instance(payload)

    async def list_instances(self) -> List[Instance]:
        payload = await self._http.request("GET", self._http.path("solr_clusters"))
        return [self._to_instance(item) for item in payload.get("clusters", [])]

    async def get_status(self, instance_id: str) -> Instance:
        payload = await self._http.request("GET", self._cluster_path(instance_id))
        return self._to_instance(payload)

    async def delete_instance(self, instance_id: str) -> None:
        await self._http.request("DELETE", self._cluster_path(instance_id))

    async def upload_config(self, cluster_id: str, config_name: str, config_zip: bytes) -> None:
        await self._http.request(
            "POST",
            self._cluster_path(cluster_id, "config", config_name),
            content=config_zip,
            headers={"Content-Type": "application/zip"},
        )

    async def create_collection(
        self, cluster_id: str, config_name: str, collection_name: str
    ) -> None:
        params = {
            "action": "CREATE",
            "name": collection_name,
            "collection.configName": config_name,
            "wt": "json",
        }
        await self._http.request(
            "POST", self._cluster_path(cluster_id, "solr", "admin", "collections"), params=params
        )

    async def add_documents(
        self, cluster_id: str, collection_name: str, documents: Sequence[Dict[str, Any]]
    ) -> None:
        update = self._cluster_path(cluster_id, "solr", collection_name, "update")
        await self._http.request("POST", update, params={"wt": "json"}, json=list(documents))
        await self._http.request("POST", update, params={"commit": "true", "wt": "json"})

    def get_backend_name(self) -> str:
        return "http_cluster"

    async def close(self) -> None:
        await self._http.close()
