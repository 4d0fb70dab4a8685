from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._chunk_collection = self.get_config_val("CHUNK_COLLECTION", default="document_vectors", val_type="string")
        self._metadata_collection = self.get_config_val("METADATA_COLLECTION", default="document_metadata", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    def get_chunk_collection(self) -> str:
        return self._chunk_collection

    def get_metadata_collection(self) -> str:
        return self._metadata_collection

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="CHUNK_COLLECTION", val_type="string", default="document_vectors"),
            EnvConfig(env_key="METADATA_COLLECTION", val_type="string", default="document_metadata"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self, credential: str | None = None) -> dict:
        # the store is authenticated with the service key, never the caller's
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self, collection: str) -> str:
        return f"/collections/{collection}"

    def _get_endpoint_check_collection_existence(self, collection: str) -> str:
        return f"/collections/{collection}/exists"

    def _get_endpoint_index(self, collection: str) -> str:
        return f"/collections/{collection}/index"

    def _get_endpoint_points(self, collection: str) -> str:
        return f"/collections/{collection}/points"

    def _get_endpoint_search(self, collection: str) -> str:
        return f"/collections/{collection}/points/search"

    def _get_endpoint_scroll(self, collection: str) -> str:
        return f"/collections/{collection}/points/scroll"

    def _get_endpoint_count(self, collection: str) -> str:
        return f"/collections/{collection}/points/count"

    def _get_endpoint_delete_points(self, collection: str) -> str:
        return f"/collections/{collection}/points/delete"

    def _get_endpoint_set_payload(self, collection: str) -> str:
        return f"/collections/{collection}/points/payload"

    def _get_write_params(self) -> dict:
        # block until the write is applied so an ingest is immediately queryable
        return {"wait": "true"}

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    def get_index_payload(self, field_name: str, field_schema: str) -> dict:
        return {"field_name": field_name, "field_schema": field_schema}

    def get_match_filter(self, conditions: dict[str, Any]) -> dict:
        return {"must": [{"key": key, "match": {"value": value}} for key, value in conditions.items()]}

    def get_search_payload(self, vector: list[float], limit: int, filter: dict | None) -> dict:
        payload = {
            "vector": vector,
            "limit": limit,
            "with_payload": True,
        }
        if filter is not None:
            payload["filter"] = filter
        return payload

    def get_scroll_payload(self, filter: dict | None, with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: int | str | None = None) -> dict:
        payload = {
            "limit": limit,
            "with_payload": with_payload,
            "with_vector": with_vector,
        }
        if filter is not None:
            payload["filter"] = filter
        if offset is not None:
            payload["offset"] = offset
        return payload

    def get_count_payload(self, filter: dict | None) -> dict:
        payload: dict = {"exact": True}
        if filter is not None:
            payload["filter"] = filter
        return payload

    def get_delete_by_filter_payload(self, filter: dict) -> dict:
        return {"filter": filter}

    def get_delete_by_ids_payload(self, ids: list[int | str]) -> dict:
        return {"points": ids}

    def get_set_payload_payload(self, payload: dict, filter: dict) -> dict:
        return {"payload": payload, "filter": filter}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_existence(self, raw_response: dict) -> bool:
        return bool(raw_response.get("result", {}).get("exists"))

    def extract_search_hits(self, raw_response: dict) -> list[dict]:
        return [
            {"id": hit.get("id"), "score": hit.get("score", 0.0), "payload": hit.get("payload") or {}}
            for hit in raw_response.get("result", [])
        ]

    def extract_scroll_content(self, raw_response: dict) -> dict:
        result = raw_response.get("result", {})
        return {
            "result": result.get("points", []),
            "status": raw_response.get("status", "ok"),
            "time": raw_response.get("time", 0),
        }

    def extract_next_page_offset(self, raw_response: dict) -> int | str | None:
        return raw_response.get("result", {}).get("next_page_offset")

    def extract_count(self, raw_response: dict) -> int:
        return raw_response.get("result", {}).get("count", 0)

    def matches_filter(self, payload: dict, filter: dict) -> bool:
        for condition in filter.get("must", []):
            expected = condition.get("match", {}).get("value")
            if payload.get(condition.get("key")) != expected:
                return False
        return True
