import httpx

from services.documents.DocumentRegistry import DocumentRegistry
from services.documents.DuplicateResolver import DuplicateResolver
from services.ingestion.EmbeddingGateway import EmbeddingGateway
from services.ingestion.IngestionService import IngestionService
from services.keys.KeyVerificationService import KeyVerificationService
from services.lifecycle.SweepScheduler import SweepScheduler
from services.lifecycle.SweeperService import SweeperService
from services.retrieval.RetrievalService import RetrievalService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.loader.ContentLoader import ContentLoader
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.exceptions.errors import ClientRequestError, StoreError
from shared.helper.HelperConfig import HelperConfig


class ServiceContainer:
    """Owns the backend clients and the services built on them.

    One container is created per process (or per test) and handed to the
    API layer and the sweep runner, so no module holds a global store handle.
    """

    def __init__(self, helper_config: HelperConfig) -> None:
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()

        # clients
        self.rag_client = RAGClientManager(helper_config=helper_config).get_client()
        self.embed_client = EmbedClientManager(helper_config=helper_config).get_client()
        self.llm_client = LLMClientManager(helper_config=helper_config).get_client()
        self.content_loader = ContentLoader(helper_config=helper_config)

        # services
        self.embedding_gateway = EmbeddingGateway(helper_config=helper_config, embed_client=self.embed_client)
        self.registry = DocumentRegistry(
            helper_config=helper_config,
            rag_client=self.rag_client,
            vector_size=self.embedding_gateway.get_vector_size(),
            distance=self.embedding_gateway.get_distance(),
        )
        self.duplicate_resolver = DuplicateResolver(helper_config=helper_config, registry=self.registry)
        self.ingestion_service = IngestionService(
            helper_config=helper_config,
            rag_client=self.rag_client,
            registry=self.registry,
            duplicate_resolver=self.duplicate_resolver,
            embedding_gateway=self.embedding_gateway,
            content_loader=self.content_loader,
        )
        self.retrieval_service = RetrievalService(
            helper_config=helper_config,
            rag_client=self.rag_client,
            registry=self.registry,
            embedding_gateway=self.embedding_gateway,
            llm_client=self.llm_client,
        )
        self.key_service = KeyVerificationService(helper_config=helper_config, llm_client=self.llm_client)
        self.sweeper_service = SweeperService(helper_config=helper_config, rag_client=self.rag_client, registry=self.registry)
        self.sweep_scheduler = SweepScheduler(helper_config=helper_config, sweeper=self.sweeper_service)

    async def boot(self, transports: dict[str, httpx.AsyncBaseTransport] | None = None) -> None:
        """Boot every client and bootstrap the collections.

        Args:
            transports (dict[str, httpx.AsyncBaseTransport] | None): Optional transport per
                client ("rag", "embed", "llm", "loader"), e.g. MockTransports in tests.
        """
        transports = transports or {}
        await self.rag_client.boot(transport=transports.get("rag"))
        await self.embed_client.boot(transport=transports.get("embed"))
        await self.llm_client.boot(transport=transports.get("llm"))
        await self.content_loader.boot(transport=transports.get("loader"))

        # the store may come up after the api, collections are ensured again on first use
        try:
            await self.rag_client.do_healthcheck()
            await self.registry.ensure_collections()
        except (ClientRequestError, StoreError) as exc:
            self.logging.error("Vector store is not ready yet: %s", exc)

    async def close(self) -> None:
        """Stop the scheduler and close every client."""
        await self.sweep_scheduler.stop()
        await self.rag_client.close()
        await self.embed_client.close()
        await self.llm_client.close()
        await self.content_loader.close()
