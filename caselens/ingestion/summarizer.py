import asyncio
from typing import Optional

from langchain_core.language_models import BaseChatModel

from caselens.generation.llm_factory import message_text
from caselens.generation.prompts import get_summary_prompt
from caselens.logging_config import get_logger
from caselens.observability import track, Phase

log = get_logger(__name__)

NO_TEXT_SUMMARY = "No extractable text content found."
SUMMARY_UNAVAILABLE = "Summary unavailable."


class Summarizer:
    """Produces a short, fact-oriented synopsis of a document's text."""

    def __init__(self, llm: Optional[BaseChatModel], max_input_chars: int = 12_000, timeout: float = 60.0):
        self.llm = llm
        self.max_input_chars = max_input_chars
        self.timeout = timeout
        self.prompt = get_summary_prompt()

    @track(name="summarize_document", phase=Phase.INGESTION)
    async def summarize(self, text: str, file_name: str) -> str:
        if not text or not text.strip():
            return NO_TEXT_SUMMARY
        if self.llm is None:
            log.warning("summary_model_not_configured", file_name=file_name)
            return SUMMARY_UNAVAILABLE

        messages = self.prompt.format_messages(
            file_name=file_name,
            text=text[:self.max_input_chars],
        )
        response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
        summary = message_text(response.content).strip()

        log.info("summary_generated", file_name=file_name, input_chars=min(len(text), self.max_input_chars))
        return summary or SUMMARY_UNAVAILABLE
