from abc import abstractmethod
from typing import Any
import math

from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.models.VectorPoint import SearchHit
from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.errors import ClientRequestError, StoreError

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.scroll_limit = int(helper_config.get_number_val("RAG_SCROLL_LIMIT", default=100))
        self.search_fallback_limit = int(helper_config.get_number_val("RAG_SEARCH_FALLBACK_LIMIT", default=20))

        # collections bootstrapped by this process
        self._ensured_collections: set[str] = set()

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    @abstractmethod
    def get_chunk_collection(self) -> str:
        """Returns the name of the collection holding chunk vectors."""
        pass

    @abstractmethod
    def get_metadata_collection(self) -> str:
        """Returns the name of the collection holding one metadata record per document."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_collection(self, collection: str) -> str:
        """Returns the endpoint path used to create a collection (e.g. "/collections/my_col")."""
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self, collection: str) -> str:
        """Returns the endpoint path for collection existence checks."""
        pass

    @abstractmethod
    def _get_endpoint_index(self, collection: str) -> str:
        """Returns the endpoint path for payload index creation."""
        pass

    @abstractmethod
    def _get_endpoint_points(self, collection: str) -> str:
        """Returns the endpoint path for point upserts."""
        pass

    @abstractmethod
    def _get_endpoint_search(self, collection: str) -> str:
        """Returns the endpoint path for similarity search."""
        pass

    @abstractmethod
    def _get_endpoint_scroll(self, collection: str) -> str:
        """Returns the endpoint path for scroll requests."""
        pass

    @abstractmethod
    def _get_endpoint_count(self, collection: str) -> str:
        """Returns the endpoint path for counting points matching a filter."""
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self, collection: str) -> str:
        """Returns the endpoint path for deleting points by filter or ids."""
        pass

    @abstractmethod
    def _get_endpoint_set_payload(self, collection: str) -> str:
        """Returns the endpoint path for partial payload updates."""
        pass

    @abstractmethod
    def _get_write_params(self) -> dict:
        """Returns query parameters appended to every write (e.g. {"wait": "true"})."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        """Builds the request body for a collection creation."""
        pass

    @abstractmethod
    def get_index_payload(self, field_name: str, field_schema: str) -> dict:
        """Builds the request body for a payload index creation."""
        pass

    @abstractmethod
    def get_match_filter(self, conditions: dict[str, Any]) -> dict:
        """Builds a backend filter requiring every payload field to equal its value.

        Args:
            conditions (dict[str, Any]): payload field → required value.

        Returns:
            dict: The backend filter.
        """
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int, filter: dict | None) -> dict:
        """Builds the request body for a similarity search."""
        pass

    @abstractmethod
    def get_scroll_payload(self, filter: dict | None, with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: int | str | None = None) -> dict:
        """
        Returns the payload for scroll requests to the RAG backend.

        Args:
            filter (dict | None): The filter to apply to the scroll request.
            with_payload (bool | list | dict): Whether to include the payload, or which payload fields to include.
            with_vector (bool | list): Whether to include the vector.
            limit (int | None): The maximum number of results to return.
            offset (int | str | None): Pagination cursor returned by the previous scroll page.

        Returns:
            dict: The payload for the scroll request.
        """
        pass

    @abstractmethod
    def get_count_payload(self, filter: dict | None) -> dict:
        """Builds the request body for a point count."""
        pass

    @abstractmethod
    def get_delete_by_filter_payload(self, filter: dict) -> dict:
        """Builds the request body for a filter-based delete."""
        pass

    @abstractmethod
    def get_delete_by_ids_payload(self, ids: list[int | str]) -> dict:
        """Builds the request body for an id-based delete."""
        pass

    @abstractmethod
    def get_set_payload_payload(self, payload: dict, filter: dict) -> dict:
        """Builds the request body for a partial payload update on filtered points."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_existence(self, raw_response: dict) -> bool:
        """Extracts the existence flag from an existence check response."""
        pass

    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[dict]:
        """Extracts the list of scored points from a search response."""
        pass

    @abstractmethod
    def extract_scroll_content(self, raw_response: dict) -> dict:
        """
        Extracts the relevant content from a raw scroll response.

        Returns:
            dict: A dict with keys "result", "status", "time".
        """
        pass

    @abstractmethod
    def extract_next_page_offset(self, raw_response: dict) -> int | str | None:
        """Extracts the cursor of the next scroll page, None on the last page."""
        pass

    @abstractmethod
    def extract_count(self, raw_response: dict) -> int:
        """Extracts the number of points from a count response."""
        pass

    @abstractmethod
    def matches_filter(self, payload: dict, filter: dict) -> bool:
        """Evaluates a filter built by get_match_filter() against a payload, client-side.

        Used by the degraded search path when the backend rejects a filtered search.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _send(self, action: str, collection: str, **kwargs) -> dict:
        """Send a request that must succeed and return its JSON body.

        Raises:
            StoreError: wrapping the ClientRequestError of a failed request, or an
                unreadable response body.
        """
        try:
            resp = await self.do_request(raise_on_error=True, **kwargs)
        except ClientRequestError as exc:
            raise StoreError(f"Vector store {action} on collection '{collection}' failed", cause=exc) from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise StoreError(f"Vector store {action} on collection '{collection}' returned an unreadable response", cause=exc) from exc

    async def do_existence_check(self, collection: str) -> bool:
        """Check if a collection exists in the rag backend.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        raw = await self._send("existence check", collection, method="GET", endpoint=self._get_endpoint_check_collection_existence(collection))
        return self.extract_existence(raw)

    async def do_create_collection(self, collection: str, vector_size: int, distance: str = "Cosine") -> None:
        """Create a collection in the rag backend.

        Args:
            collection (str): The collection name.
            vector_size (int): The size of the vectors in the collection.
            distance (str): The distance metric for the vectors.
        """
        await self._send(
            "create",
            collection,
            method="PUT",
            json=self.get_create_collection_payload(vector_size, distance),
            endpoint=self._get_endpoint_collection(collection),
        )
        self.logging.info("Created collection '%s' (size=%d, distance=%s).", collection, vector_size, distance)

    async def do_create_payload_index(self, collection: str, field_name: str, field_schema: str = "keyword") -> None:
        """Create a payload index on a collection field."""
        await self._send(
            "index creation",
            collection,
            method="PUT",
            json=self.get_index_payload(field_name, field_schema),
            params=self._get_write_params(),
            endpoint=self._get_endpoint_index(collection),
        )

    async def ensure_collection(self, collection: str, vector_size: int, distance: str = "Cosine", indexes: list[str] | None = None) -> None:
        """Make sure a collection exists, creating it and its payload indexes if needed.

        Idempotent. A creation that fails because a concurrent bootstrap created
        the collection first is tolerated. Index creation failures are logged
        only; the collection stays usable without the index.

        Args:
            collection (str): The collection name.
            vector_size (int): Vector dimension used if the collection is created.
            distance (str): Similarity metric used if the collection is created.
            indexes (list[str] | None): Payload fields to index as keywords on creation.

        Raises:
            StoreError: If the collection neither exists nor can be created.
        """
        if collection in self._ensured_collections:
            return
        if not await self.do_existence_check(collection):
            try:
                await self.do_create_collection(collection, vector_size, distance)
            except StoreError:
                if not await self.do_existence_check(collection):
                    raise
                self.logging.info("Collection '%s' was created concurrently, continuing.", collection)
            else:
                for field_name in indexes or []:
                    try:
                        await self.do_create_payload_index(collection, field_name)
                        self.logging.info("Created payload index '%s' on collection '%s'.", field_name, collection)
                    except StoreError as exc:
                        self.logging.error("Could not create payload index '%s' on '%s': %s", field_name, collection, exc.cause)
        self._ensured_collections.add(collection)

    async def do_upsert_points(self, collection: str, points: list[dict[str, Any]]) -> None:
        """Upsert points into a collection.
        Inserts new points or replaces existing ones if a point with the same ID already exists.

        Args:
            collection (str): The target collection.
            points (list[dict[str, Any]]): Points as {"id", "vector", "payload"}.
        """
        await self._send(
            "upsert",
            collection,
            method="PUT",
            json={"points": points},
            params=self._get_write_params(),
            endpoint=self._get_endpoint_points(collection),
        )

    async def _do_raw_search(self, collection: str, vector: list[float], limit: int, filter: dict | None) -> list[SearchHit]:
        resp = await self.do_request(
            method="POST",
            json=self.get_search_payload(vector, limit, filter),
            endpoint=self._get_endpoint_search(collection),
            raise_on_error=True,
        )
        try:
            return [SearchHit(**hit) for hit in self.extract_search_hits(resp.json())]
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Vector store search on collection '{collection}' returned an unreadable response", cause=exc) from exc

    async def do_search(self, collection: str, vector: list[float], limit: int, filter: dict | None = None) -> list[SearchHit]:
        """Return up to `limit` nearest points, optionally restricted by a payload filter.

        If the backend rejects the filtered search as a bad request, the search is
        repeated without a filter using a larger limit and the hits are filtered
        client-side, then truncated to `limit`. This returns the same top-k set as a
        server-side filtered search whenever the number of matching points in the
        enlarged window is not smaller than the number of true matches.

        Args:
            collection (str): The collection to search.
            vector (list[float]): The query vector.
            limit (int): Maximum number of hits.
            filter (dict | None): A filter built by get_match_filter().

        Returns:
            list[SearchHit]: Hits in descending similarity order.

        Raises:
            StoreError: If the search (or its fallback) fails.
        """
        try:
            return await self._do_raw_search(collection, vector, limit, filter)
        except ClientRequestError as exc:
            if filter is None or not exc.is_client_error():
                raise StoreError(f"Vector store search on collection '{collection}' failed", cause=exc) from exc
            self.logging.warning(
                "Filtered search on '%s' rejected (status %s), falling back to client-side filtering.",
                collection, exc.status_code,
            )

        fallback_limit = max(self.search_fallback_limit, limit)
        try:
            hits = await self._do_raw_search(collection, vector, fallback_limit, None)
        except ClientRequestError as exc:
            raise StoreError(f"Vector store fallback search on collection '{collection}' failed", cause=exc) from exc
        return [hit for hit in hits if self.matches_filter(hit.payload, filter)][:limit]

    async def do_scroll(self, collection: str, filter: dict | None = None, with_payload: bool | list | dict = True, with_vector: bool | list = False, limit: int | None = None, offset: int | str | None = None) -> ScrollResult:
        """Scroll a single bounded page from a collection.

        The page is a snapshot in store-internal order; with more than `limit`
        matching points it does not cover the collection. Use do_scroll_all() when
        completeness matters.

        Args:
            collection (str): The collection to scroll.
            filter (dict | None): The filter to apply.
            with_payload (bool | list | dict): Whether to include the payload, or which payload fields to include.
            with_vector (bool | list): Whether to include the vector.
            limit (int | None): Page size, defaults to RAG_SCROLL_LIMIT.
            offset (int | str | None): Cursor from the previous page's next_page_offset.

        Returns:
            ScrollResult: The page, including next_page_offset when more pages exist.
        """
        raw_response = await self._send(
            "scroll",
            collection,
            method="POST",
            json=self.get_scroll_payload(filter, with_payload, with_vector, limit or self.scroll_limit, offset),
            endpoint=self._get_endpoint_scroll(collection),
        )
        scroll_content = self.extract_scroll_content(raw_response=raw_response)
        return ScrollResult(
            result=scroll_content.get("result", []),
            status=scroll_content.get("status", "ok"),
            time=scroll_content.get("time", 0),
            next_page_offset=self.extract_next_page_offset(raw_response),
        )

    async def do_count(self, collection: str, filter: dict | None = None) -> int:
        """Count the points matching a filter."""
        raw = await self._send(
            "count",
            collection,
            method="POST",
            json=self.get_count_payload(filter),
            endpoint=self._get_endpoint_count(collection),
        )
        return self.extract_count(raw)

    async def do_scroll_all(self, collection: str, filter: dict | None = None, with_payload: bool | list | dict = True, page_size: int = 1000) -> ScrollResult:
        """Scroll through ALL points matching the filter, paginating automatically.

        Runs a loop driven by next_page_offset until the backend signals there
        are no more pages.

        Returns:
            ScrollResult: All matching points. next_page_offset is always None.
        """
        all_points: list[dict] = []
        offset: int | str | None = None
        page = 1
        total_points = await self.do_count(collection, filter)
        total_pages = math.ceil(total_points / page_size) if total_points > 0 else 1
        while True:
            page_result = await self.do_scroll(
                collection,
                filter=filter,
                with_payload=with_payload,
                limit=page_size,
                offset=offset,
            )
            all_points.extend(page_result.result)
            self.logging.debug(
                "Fetched page %d of %d from '%s', total points so far: %d of %d",
                page, total_pages, collection, len(all_points), total_points,
            )
            offset = page_result.next_page_offset
            if offset is None:
                break
            page += 1
        return ScrollResult(result=all_points)

    async def do_delete_points_by_filter(self, collection: str, filter: dict) -> None:
        """Delete all points matching a filter. Matching nothing is not an error."""
        await self._send(
            "delete",
            collection,
            method="POST",
            json=self.get_delete_by_filter_payload(filter),
            params=self._get_write_params(),
            endpoint=self._get_endpoint_delete_points(collection),
        )

    async def do_delete_points_by_ids(self, collection: str, ids: list[int | str]) -> None:
        """Delete points by key. Unknown keys are ignored by the backend."""
        if not ids:
            return
        await self._send(
            "delete",
            collection,
            method="POST",
            json=self.get_delete_by_ids_payload(ids),
            params=self._get_write_params(),
            endpoint=self._get_endpoint_delete_points(collection),
        )

    async def do_set_payload(self, collection: str, payload: dict, filter: dict) -> None:
        """Merge payload fields into every point matching a filter.

        Never creates points: if no point matches (e.g. the document was just
        evicted) the update is a no-op.
        """
        await self._send(
            "payload update",
            collection,
            method="POST",
            json=self.get_set_payload_payload(payload, filter),
            params=self._get_write_params(),
            endpoint=self._get_endpoint_set_payload(collection),
        )
