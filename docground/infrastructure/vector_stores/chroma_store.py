import logging
from typing import Optional

import requests

from docground.core.errors import VectorStoreUnavailable
from docground.core.models.document import VectorMatch

logger = logging.getLogger(__name__)


class ChromaVectorStore:
    """Vector store using ChromaDB HTTP API."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8001,
        collection_name: str = "documents",
        tenant: str = "default_tenant",
        database: str = "default_database",
        timeout: float = 10.0,
    ):
        """Initialize ChromaDB client.

        Args:
            host: ChromaDB host.
            port: ChromaDB port.
            collection_name: Collection name.
            tenant: Tenant name.
            database: Database name.
            timeout: Per-request timeout in seconds.
        """
        self._base_url = f"http://{host}:{port}/api/v2"
        self._tenant = tenant
        self._database = database
        self._collection_name = collection_name
        self._timeout = timeout
        self._collection_id: Optional[str] = None

    @property
    def _collections_url(self) -> str:
        return f"{self._base_url}/tenants/{self._tenant}/databases/{self._database}/collections"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            resp = requests.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise VectorStoreUnavailable(f"Chroma request failed: {type(e).__name__}") from e
        if resp.status_code >= 400:
            raise VectorStoreUnavailable(f"Chroma returned HTTP {resp.status_code}")
        return resp

    def _ensure_collection(self) -> str:
        """Get or create collection, return ID."""
        if self._collection_id:
            return self._collection_id

        for col in self._request("GET", self._collections_url).json():
            if col["name"] == self._collection_name:
                self._collection_id = col["id"]
                return self._collection_id

        resp = self._request(
            "POST",
            self._collections_url,
            json={"name": self._collection_name, "metadata": {"hnsw:space": "cosine"}},
        )
        self._collection_id = resp.json()["id"]
        logger.info(f"Created collection: {self._collection_name}")
        return self._collection_id

    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict],
    ) -> None:
        """Insert or replace vectors by id."""
        col_id = self._ensure_collection()
        self._request(
            "POST",
            f"{self._collections_url}/{col_id}/upsert",
            json={
                "ids": ids,
                "embeddings": embeddings,
                "documents": documents,
                "metadatas": metadatas,
            },
        )

    def query(
        self, query_embedding: list[float], user_id: str, top_k: int = 10
    ) -> list[VectorMatch]:
        """Search by embedding within one user's vectors."""
        col_id = self._ensure_collection()
        resp = self._request(
            "POST",
            f"{self._collections_url}/{col_id}/query",
            json={
                "query_embeddings": [query_embedding],
                "n_results": top_k,
                "where": {"user_id": user_id},
                "include": ["documents", "metadatas", "distances", "embeddings"],
            },
        )

        data = resp.json()
        if not data.get("ids") or not data["ids"][0]:
            return []

        embeddings = (data.get("embeddings") or [None])[0]
        matches = []
        for i, vector_id in enumerate(data["ids"][0]):
            matches.append(
                VectorMatch(
                    id=vector_id,
                    score=1.0 - data["distances"][0][i],
                    content=data["documents"][0][i] or "",
                    metadata=data["metadatas"][0][i] or {},
                    embedding=list(embeddings[i]) if embeddings else None,
                )
            )
        return matches

    def delete(self, ids: list[str]) -> None:
        """Delete vectors by id."""
        if not ids:
            return
        col_id = self._ensure_collection()
        self._request("POST", f"{self._collections_url}/{col_id}/delete", json={"ids": ids})

    def count(self) -> int:
        """Get vector count."""
        col_id = self._ensure_collection()
        return self._request("GET", f"{self._collections_url}/{col_id}/count").json()
