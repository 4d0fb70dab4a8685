"""Embedding gateway: batching and error translation around the embed client."""

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions.errors import ClientRequestError, EmbeddingError
from shared.helper.HelperConfig import HelperConfig


class EmbeddingGateway:
    """Embeds texts in requests of at most EMBED_BATCH_SIZE texts.

    A failed request fails its whole batch; nothing from that batch is
    returned. Batches embedded earlier by the same caller are unaffected.
    """

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self.batch_size = int(helper_config.get_number_val("EMBED_BATCH_SIZE", default=5))
        if self.batch_size <= 0:
            raise ValueError(f"EMBED_BATCH_SIZE must be positive, got {self.batch_size}.")

    def get_vector_size(self) -> int:
        return self._embed.get_vector_size()

    def get_distance(self) -> str:
        return self._embed.get_distance()

    async def embed_batch(self, texts: list[str], credential: str | None = None) -> list[list[float]]:
        """Embed texts, one vector per text in input order.

        Args:
            texts (list[str]): Texts to embed.
            credential (str | None): Caller credential forwarded to the provider.

        Returns:
            list[list[float]]: Vectors in input order.

        Raises:
            EmbeddingError: If a provider request fails or returns the wrong number of vectors.
        """
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            try:
                batch_vectors = await self._embed.do_embed(batch, credential=credential)
            except ClientRequestError as exc:
                raise EmbeddingError(f"Embedding request failed for a batch of {len(batch)} text(s)", cause=exc) from exc
            except ValueError as exc:
                raise EmbeddingError(f"Embedding provider returned an invalid response: {exc}", cause=exc) from exc
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding provider returned {len(batch_vectors)} vector(s) for {len(batch)} text(s)"
                )
            vectors.extend(batch_vectors)
        return vectors

    async def embed_one(self, text: str, credential: str | None = None) -> list[float]:
        """Embed a single text, e.g. a query."""
        return (await self.embed_batch([text], credential=credential))[0]
