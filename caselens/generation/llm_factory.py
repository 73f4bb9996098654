from typing import Any, Dict, Optional, Tuple
from langchain_core.language_models import BaseChatModel
from caselens.config import LLMProvider, Settings
from caselens.logging_config import get_logger

log = get_logger(__name__)


def build_chat_model(
    provider: LLMProvider,
    model: str,
    api_key: str,
    timeout: float,
    temperature: Optional[float] = 0,
    max_tokens: Optional[int] = None,
    reasoning_effort: Optional[str] = None,
) -> BaseChatModel:
    """
    Factory that returns a LangChain chat model for one provider/model pair.
    Supports: OpenAI, Google Gemini.
    """
    try:
        if provider == LLMProvider.OPENAI:
            from langchain_openai import ChatOpenAI
            kwargs: Dict[str, Any] = {
                "model": model,
                "api_key": api_key,
                "request_timeout": timeout,
                "max_retries": 0,  # Retries are handled by tenacity in the router
            }
            if max_tokens:
                kwargs["max_tokens"] = max_tokens
            if reasoning_effort:
                # Reasoning models reject a temperature setting
                kwargs["reasoning_effort"] = reasoning_effort
            elif temperature is not None:
                kwargs["temperature"] = temperature
            log.info("llm_initialized", provider=provider.value, model=model)
            return ChatOpenAI(**kwargs)

        elif provider == LLMProvider.GEMINI:
            from langchain_google_genai import ChatGoogleGenerativeAI
            log.info("llm_initialized", provider=provider.value, model=model)
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=api_key,
                temperature=temperature if temperature is not None else 0,
                max_output_tokens=max_tokens,
                timeout=timeout,
                max_retries=0,
            )

        else:
            raise ValueError(f"Unsupported LLM provider: {provider}")

    except Exception as e:
        log.error("llm_init_failed", provider=getattr(provider, "value", provider), error=str(e))
        raise


class ModelRegistry:
    """
    Lazily builds and caches the chat models used by the answer router.

    Models are keyed by (choice, max_tokens, reasoning_effort) so each effort
    level reuses one client instead of rebuilding it per request.
    """

    def __init__(self, settings: Settings):
        self._llm = settings.llm
        self._timeout = settings.timeout.llm_seconds
        self._cache: Dict[Tuple[str, Optional[int], Optional[str]], BaseChatModel] = {}

    def is_available(self, choice: str) -> bool:
        if choice == "fast":
            return bool(self._llm.fast_api_key)
        if choice == "reasoning":
            return bool(self._llm.reasoning_api_key)
        return False

    def model_name(self, choice: str) -> str:
        return self._llm.fast_model if choice == "fast" else self._llm.reasoning_model

    def get(self, choice: str, max_tokens: Optional[int] = None, reasoning_effort: Optional[str] = None) -> BaseChatModel:
        key = (choice, max_tokens, reasoning_effort)
        if key not in self._cache:
            if choice == "fast":
                self._cache[key] = build_chat_model(
                    self._llm.fast_provider,
                    self._llm.fast_model,
                    self._llm.fast_api_key,
                    self._timeout,
                    temperature=0.3,
                    max_tokens=max_tokens,
                )
            else:
                self._cache[key] = build_chat_model(
                    self._llm.reasoning_provider,
                    self._llm.reasoning_model,
                    self._llm.reasoning_api_key,
                    self._timeout,
                    max_tokens=max_tokens,
                    reasoning_effort=reasoning_effort,
                )
        return self._cache[key]


def message_text(content: Any) -> str:
    """
    Flatten a chat model's message content into plain text.
    Gemini may return [{'type': 'text', 'text': ...}, {'extras': ...}].
    """
    if content is None:
        return ""
    if isinstance(content, list):
        text_blocks = []
        for block in content:
            if isinstance(block, str):
                text_blocks.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                text_blocks.append(block.get("text", ""))
        return "".join(text_blocks)
    return str(content)
