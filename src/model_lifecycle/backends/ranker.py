"""
HTTP Ranker Backend.

Talks to a learning-to-rank service. Rankers are trained from relevance
feature rows that the service itself extracts through the search
collection's ``fcselect`` handler, one request per question.

    POST   /v1/rankers                                          create + start training
    GET    /v1/rankers                                          list
    GET    /v1/rankers/{id}                                     status
    DELETE /v1/rankers/{id}                                     delete
    GET    /v1/solr_clusters/{cluster}/solr/{collection}/fcselect
                                                                rank / extract features
"""

import json
from typing import Any, Dict, List, Optional

import httpx

from .base import Instance, RankerBackend, TrainingJob, parse_timestamp
from .http_client import TrainingServiceClient
from ..config import BackendConfig
from ..exceptions import ClusterSetupError, QueryError, RemoteServiceError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Number of candidate documents scored per question when extracting features.
FEATURE_ROWS = 10


class HTTPRankerBackend(RankerBackend):
    """Ranker backend for a REST training service with a search collection."""

    def __init__(
        self,
        backend_config: BackendConfig,
        collection_name: str = "default-collection",
        cluster_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Args:
            backend_config: Service URL, credentials and timeout.
            collection_name: Search collection used for ranking and feature
                extraction.
            cluster_id: Search cluster hosting the collection. Usually set
                later by the ranker manager through ``use_cluster()``.
            client: Optional pre-built ``httpx.AsyncClient``.
        """
        self._http = TrainingServiceClient(backend_config, client=client)
        self.collection_name = collection_name
        self.cluster_id = cluster_id
        logger.info(
            "Initialized HTTPRankerBackend (url=%s, collection=%s)",
            self._http.base_url,
            collection_name,
        )

    def _to_instance(self, payload: Dict[str, Any]) -> Instance:
        try:
            instance_id = payload["ranker_id"]
            created = parse_timestamp(payload["created"])
        except (KeyError, ValueError) as e:
            raise RemoteServiceError(
                f"Malformed ranker record: {e}", payload=payload
            ) from e
        return Instance(
            id=instance_id,
            name=payload.get("name", ""),
            status=self.normalize_status(payload.get("status")),
            created_at=created,
            kind=self.kind,
            status_description=payload.get("status_description"),
            url=payload.get("url"),
            raw=dict(payload),
        )

    def _fcselect_path(self) -> str:
        if self.cluster_id is None:
            raise ClusterSetupError(
                "No search cluster selected for ranking; set up a cluster first",
                details={"collection": self.collection_name},
            )
        return self._http.path(
            "solr_clusters", self.cluster_id, "solr", self.collection_name, "fcselect"
        )

    async def create_instance(self, job: TrainingJob) -> Instance:
        metadata = {"name": job.name}
        metadata.update(job.metadata)
        files = {
            "training_metadata": (None, json.dumps(metadata), "application/json"),
            "training_data": ("training_data.csv", job.data, "text/csv"),
        }
        payload = await self._http.request("POST", self._http.path("rankers"), files=files)
        return self._to_instance(payload)

    async def list_instances(self) -> List[Instance]:
        payload = await self._http.request("GET", self._http.path("rankers"))
        return [self._to_instance(item) for item in payload.get("rankers", [])]

    async def get_status(self, instance_id: str) -> Instance:
        payload = await self._http.request("GET", self._http.path("rankers", instance_id))
        return self._to_instance(payload)

    async def delete_instance(self, instance_id: str) -> None:
        await self._http.request("DELETE", self._http.path("rankers", instance_id))

    async def query(self, instance: Instance, text: str) -> dict:
        params = {"q": text, "ranker_id": instance.id, "fl": "id,title,url"}
        return await self._http.request(
            "GET", self._fcselect_path(), params=params, error_class=QueryError
        )

    async def extract_features(self, question: str, ground_truth: str) -> str:
        params = {
            "q": question,
            "gt": ground_truth,
            "returnRSInput": "true",
            "rows": FEATURE_ROWS,
            "fl": "id",
        }
        payload = await self._http.request("GET", self._fcselect_path(), params=params)
        features = payload.get("RSInput")
        if features is None:
            raise RemoteServiceError(
                f"Feature extraction returned no RSInput for question {question!r}",
                payload=payload,
            )
        return features

    def get_backend_name(self) -> str:
        return "http_ranker"

    async def close(self) -> None:
        await self._http.close()
