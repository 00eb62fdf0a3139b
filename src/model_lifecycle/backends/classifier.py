"""
HTTP Classifier Backend.

Talks to a natural-language classifier service that trains from CSV files
of ``text,label`` rows. Endpoints (relative to the configured URL):

    POST   /v1/classifiers                     create + start training
    GET    /v1/classifiers                     list
    GET    /v1/classifiers/{id}                status
    DELETE /v1/classifiers/{id}                delete
    POST   /v1/classifiers/{id}/classify       classify {"text": ...}
"""

import json
from typing import Any, Dict, List, Optional

import httpx

from .base import ClassifierBackend, Instance, TrainingJob, parse_timestamp
from .http_client import TrainingServiceClient
from ..config import BackendConfig
from ..exceptions import QueryError, RemoteServiceError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class HTTPClassifierBackend(ClassifierBackend):
    """Classifier backend for a REST training service."""

    def __init__(
        self,
        backend_config: BackendConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Args:
            backend_config: Service URL, credentials and timeout.
            client: Optional pre-built ``httpx.AsyncClient``.
        """
        self._http = TrainingServiceClient(backend_config, client=client)
        logger.info("Initialized HTTPClassifierBackend (url=%s)", self._http.base_url)

    def _to_instance(self, payload: Dict[str, Any]) -> Instance:
        try:
            instance_id = payload["classifier_id"]
            created = parse_timestamp(payload["created"])
        except (KeyError, ValueError) as e:
            raise RemoteServiceError(
                f"Malformed classifier record: {e}", payload=payload
            ) from e
        return Instance(
            id=instance_id,
            name=payload.get("name", ""),
            status=self.normalize_status(payload.get("status")),
            created_at=created,
            kind=self.kind,
            language=payload.get("language"),
            status_description=payload.get("status_description"),
            url=payload.get("url"),
            raw=dict(payload),
        )

    async def create_instance(self, job: TrainingJob) -> Instance:
        metadata = {"language": job.language or "en", "name": job.name}
        metadata.update(job.metadata)
        files = {
            "training_metadata": (None, json.dumps(metadata), "application/json"),
            "training_data": ("training_data.csv", job.data, "text/csv"),
        }
        payload = await self._http.request(
            "POST", self._http.path("classifiers"), files=files
        )
        return self._to_instance(payload)

    async def list_instances(self) -> List[Instance]:
        payload = await self._http.request("GET", self._http.path("classifiers"))
        return [self._to_instance(item) for item in payload.get("classifiers", [])]

    async def get_status(self, instance_id: str) -> Instance:
        payload = await self._http.request(
            "GET", self._http.path("classifiers", instance_id)
        )
        return self._to_instance(payload)

    async def delete_instance(self, instance_id: str) -> None:
        await self._http.request("DELETE", self._http.path("classifiers", instance_id))

    async def query(self, instance: Instance, text: str) -> dict:
        return await self._http.request(
            "POST",
            self._http.path("classifiers", instance.id, "classify"),
            json={"text": text},
            error_class=QueryError,
        )

    def get_backend_name(self) -> str:
        return "http_classifier"

    async def close(self) -> None:
        await self._http.close()
