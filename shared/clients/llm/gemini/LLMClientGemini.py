from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class LLMClientGemini(LLMClientInterface):
    """Google Generative Language API generation (generateContent).

    Requests are authorised with the caller's own API key when one is given,
    falling back to LLM_GEMINI_API_KEY.
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

    def _get_default_chat_model(self) -> str:
        return "gemini-2.0-flash"

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

    def _get_endpoint_chat(self) -> str:
        return f"/v1beta/models/{self.chat_model}:generateContent"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict], params: dict) -> dict:
        """Build the generateContent request body.

        System messages become the system instruction, the remaining messages
        are mapped to user/model turns.
        """
        system_parts = [{"text": m["content"]} for m in messages if m.get("role") == "system"]
        contents = [
            {
                "role": "model" if m.get("role") == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m.get("role") != "system"
        ]
        body: dict = {
            "contents": contents,
            "generationConfig": {
                "temperature": params.get("temperature"),
                "topP": params.get("top_p"),
                "maxOutputTokens": params.get("max_tokens"),
            },
        }
        if system_parts:
            body["systemInstruction"] = {"parts": system_parts}
        return body

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        candidates = response_data.get("candidates") or []
        if not candidates:
            raise ValueError(
                "Gemini response does not contain candidates. "
                "Response keys: %s" % list(response_data.keys())
            )
        parts = candidates[0].get("content", {}).get("parts") or []
        texts = [part.get("text", "") for part in parts if "text" in part]
        if not texts:
            raise ValueError("Gemini response candidate does not contain text.")
        return "".join(texts)
