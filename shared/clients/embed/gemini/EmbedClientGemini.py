from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientGemini(EmbedClientInterface):
    """Google Generative Language API embeddings (batchEmbedContents).

    Requests are authorised with the caller's own API key when one is given,
    falling back to EMBED_GEMINI_API_KEY.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Gemini"

    def _get_default_model(self) -> str:
        return "embedding-001"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://generativelanguage.googleapis.com"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self, credential: str | None = None) -> dict:
        key = credential or self._api_key
        if key:
            return {"x-goog-api-key": key}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1beta/models"

    def get_endpoint_embedding(self) -> str:
        return f"/v1beta/models/{self.embed_model}:batchEmbedContents"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the batchEmbedContents request body, one request per text."""
        return {
            "requests": [
                {"model": f"models/{self.embed_model}", "content": {"parts": [{"text": text}]}}
                for text in texts
            ]
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        embeddings = response_data.get("embeddings")
        if not embeddings or not embeddings[0].get("values"):
            raise ValueError(
                "Gemini response does not contain valid embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        return [embedding.get("values", []) for embedding in embeddings]
