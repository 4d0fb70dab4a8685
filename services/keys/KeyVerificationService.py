from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions.errors import ClientRequestError, GenerationError, ValidationError
from shared.helper.HelperConfig import HelperConfig


class KeyVerificationService:
    """Checks a caller API key against the generation provider."""

    CHECK_PROMPT = "Hello"

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm = llm_client

    async def do_verify(self, api_key: str | None) -> tuple[bool, str]:
        """Send one minimal generation request billed to `api_key`.

        Args:
            api_key (str | None): The key to check.

        Returns:
            tuple[bool, str]: Whether the key was accepted, and a message.

        Raises:
            ValidationError: If no key is given.
            GenerationError: If the provider is unavailable, so the key could not be checked.
        """
        if not api_key:
            raise ValidationError("API key is required", code="API_KEY_REQUIRED")
        try:
            await self._llm.do_chat(
                [{"role": "user", "content": self.CHECK_PROMPT}],
                credential=api_key,
                params={"max_tokens": 1},
            )
        except ClientRequestError as exc:
            if exc.transient:
                raise GenerationError(f"Could not verify API key: {exc}", cause=exc) from exc
            self.logging.info("API key rejected by %s: %s", self._llm.get_engine_name(), exc)
            return False, str(exc)
        except ValueError as exc:
            # the provider accepted the key but answered without text
            self.logging.debug("API key check returned no text: %s", exc)
        return True, "API key is valid"
