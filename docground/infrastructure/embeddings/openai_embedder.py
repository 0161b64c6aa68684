import logging

from openai import APIError, AsyncOpenAI

from docground.core.errors import ProviderError

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Embeddings from an OpenAI-compatible API."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
    ):
        self._client = AsyncOpenAI(base_url=base_url, api_key=api_key or "not-set")
        self._model = model
        self.dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(model=self._model, input=texts)
        except APIError as e:
            logger.error(f"Embedding request failed ({self._model}): {type(e).__name__}")
            raise ProviderError(f"embedding request failed: {type(e).__name__}") from e

        # Items carry their input position
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]
