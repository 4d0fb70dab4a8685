from services.documents.DocumentRegistry import DocumentRegistry
from services.ingestion.EmbeddingGateway import EmbeddingGateway
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.exceptions.errors import ClientRequestError, GenerationError, NotFoundError, PipelineError, ValidationError
from shared.helper.HelperConfig import HelperConfig

PROMPT_TEMPLATE = (
    "Based on the following information, please answer the question.\n\n"
    "Context information:\n{context}\n\n"
    "Question: {query}\n\n"
    "Answer:"
)


class RetrievalService:
    """Answers a question about one document from its most similar chunks."""

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        registry: DocumentRegistry,
        embedding_gateway: EmbeddingGateway,
        llm_client: LLMClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag = rag_client
        self._registry = registry
        self._embedding = embedding_gateway
        self._llm = llm_client
        self.top_k = int(helper_config.get_number_val("RETRIEVAL_TOP_K", default=3))

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_answer(self, query: str, document_id: str, credential: str | None) -> str:
        """Answer `query` using only chunks of `document_id`.

        Args:
            query (str): The user question.
            document_id (str): Document to answer from.
            credential (str | None): The caller's API key, forwarded to the providers.

        Returns:
            str: The generated answer, verbatim.

        Raises:
            ValidationError: If the credential, the query or the document id is missing.
            NotFoundError: NO_CONTEXT_FOUND if the document has no chunks.
            EmbeddingError: If the query cannot be embedded.
            StoreError: If the search fails.
            GenerationError: If the answer cannot be generated.
        """
        if not credential:
            raise ValidationError("API key is not provided", code="API_KEY_MISSING")
        if not query or not query.strip():
            raise ValidationError("Query is required", code="QUERY_MISSING")
        if not document_id:
            raise ValidationError("Document ID is required", code="DOCUMENT_ID_MISSING")

        await self._record_access(document_id)

        query_vector = await self._embedding.embed_one(query, credential=credential)
        await self._registry.ensure_collections()
        hits = await self._rag.do_search(
            self._registry.chunk_collection,
            vector=query_vector,
            limit=self.top_k,
            filter=self._registry.document_filter(document_id),
        )
        # never answer from another document's chunks
        texts = [
            hit.payload.get("text", "")
            for hit in hits
            if hit.payload.get("document_id") == document_id and hit.payload.get("text")
        ]
        if not texts:
            raise NotFoundError(f"No relevant context found for document {document_id}", code="NO_CONTEXT_FOUND")
        self.logging.debug("Retrieved %d chunk(s) for document %s.", len(texts), document_id)

        prompt = self.build_prompt(query, texts)
        try:
            return await self._llm.do_chat([{"role": "user", "content": prompt}], credential=credential)
        except (ClientRequestError, ValueError) as exc:
            raise GenerationError(f"Failed to generate a response: {exc}", cause=exc) from exc

    ##########################################
    ############### HELPERS ##################
    ##########################################

    @staticmethod
    def build_prompt(query: str, texts: list[str]) -> str:
        """Fill the answer prompt with the retrieved chunk texts in rank order."""
        return PROMPT_TEMPLATE.format(context="\n\n".join(texts), query=query)

    async def _record_access(self, document_id: str) -> None:
        try:
            await self._registry.do_record_access(document_id)
        except PipelineError as exc:
            self.logging.warning("Could not record access for document %s: %s", document_id, exc.message)
