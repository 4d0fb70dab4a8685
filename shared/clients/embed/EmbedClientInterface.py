from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface

from shared.helper.HelperConfig import HelperConfig

class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=self._get_default_model())
        self.embed_vector_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_VECTOR_SIZE", default=768))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    @abstractmethod
    def _get_default_model(self) -> str:
        """Returns the model used when EMBED_MODEL is not set."""
        pass

    def get_vector_size(self) -> int:
        """Returns the dimension of the vectors produced by the configured model."""
        return self.embed_vector_size

    def get_distance(self) -> str:
        """Returns the similarity metric the vectors are compared with (e.g. "Cosine")."""
        return self.embed_distance

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str, credential: str | None = None) -> list[list[float]]:
        """Send one embedding request and return the extracted vectors.

        Normalises the input to a list, builds the backend-specific payload via
        get_embed_payload(), sends the request and extracts the vectors via
        extract_embeddings_from_response().

        Args:
            texts (list[str] | str): One or more texts to embed.
            credential (str | None): Caller credential for backends billed per caller.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            ClientRequestError: If the HTTP request fails.
            ValueError: If the response does not contain valid embeddings.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts)
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(),
            json=body,
            credential=credential,
            raise_on_error=True,
        )
        return self.extract_embeddings_from_response(response.json())
