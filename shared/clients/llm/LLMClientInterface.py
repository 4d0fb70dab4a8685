from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL", default=self._get_default_chat_model())
        self.temperature = helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.7)
        self.top_p = helper_config.get_number_val(f"{self.get_client_type().upper()}_TOP_P", default=0.9)
        self.max_tokens = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_MAX_TOKENS", default=2048))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    @abstractmethod
    def _get_default_chat_model(self) -> str:
        """Returns the model used when LLM_CHAT_MODEL is not set."""
        pass

    def get_default_params(self) -> dict:
        """Returns the configured generation parameters.

        Returns:
            dict: {"temperature", "top_p", "max_tokens"}
        """
        return {"temperature": self.temperature, "top_p": self.top_p, "max_tokens": self.max_tokens}

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict], params: dict) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).
            params (dict): Generation parameters (temperature, top_p, max_tokens).

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw chat API response.

        Raises:
            ValueError: If the response does not contain a reply.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(self, messages: list[dict], credential: str | None = None, params: dict | None = None) -> str:
        """Send a chat/completion request and return the assistant reply text.

        Args:
            messages (list[dict]): OpenAI-format messages.
            credential (str | None): Caller credential for backends billed per caller.
            params (dict | None): Overrides for the configured generation parameters.

        Returns:
            str: The assistant reply text.

        Raises:
            ClientRequestError: If the HTTP request fails.
            ValueError: If the response does not contain a valid reply.
        """
        body = self.get_chat_payload(messages, {**self.get_default_params(), **(params or {})})
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            credential=credential,
            raise_on_error=True,
        )
        return self.extract_chat_response(response.json())
