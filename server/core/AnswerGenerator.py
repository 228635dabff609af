import httpx

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions import GenerationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage, ChatMode

DOCUMENT_INSTRUCTIONS = (
    "Based on the following context, answer the user's question. "
    "Only use facts from the context and do not make anything up. "
    "If the context doesn't have the answer, say you don't know."
)

GENERAL_INSTRUCTIONS = (
    "You are a helpful assistant. Use the provided context and conversation history to answer the user's question.\n"
    "- If the context is relevant, incorporate it into your answer and do not invent facts about the documents.\n"
    "- If the context is missing or not relevant, simply answer the question naturally without mentioning the lack of context."
)


class AnswerGenerator:
    """Builds the grounded prompt for a chat turn and asks the language model for the answer."""

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface):
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client

    @staticmethod
    def build_prompt(question: str, context_chunks: list[str], history: list[ChatMessage], mode: ChatMode) -> str:
        """Render instructions, context (retrieval order), history (chronological) and the question."""
        instructions = DOCUMENT_INSTRUCTIONS if mode == ChatMode.DOCUMENT else GENERAL_INSTRUCTIONS
        context = "\n\n".join(context_chunks)
        history_lines = "\n".join(f"{message.role.value}: {message.text}" for message in history)
        return f"{instructions}\n\nContext:\n{context}\n\nHistory:\n{history_lines}\n\nQuestion: {question}"

    async def generate(
        self,
        question: str,
        context_chunks: list[str],
        history: list[ChatMessage],
        mode: ChatMode,
    ) -> str:
        """
        Generate the answer for one chat turn. There is no retry.

        Raises:
            GenerationError: If the model backend fails or replies with nothing.
        """
        prompt = self.build_prompt(question, context_chunks, history, mode)
        try:
            answer = await self._llm_client.do_chat([{"role": "user", "content": prompt}])
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise GenerationError(
                f"Language model {self._llm_client.get_engine_name()} failed: {exc}",
                details={"mode": mode.value},
            ) from exc

        if not answer or not answer.strip():
            raise GenerationError(
                f"Language model {self._llm_client.get_engine_name()} returned an empty answer.",
                details={"mode": mode.value},
            )
        return answer.strip()
