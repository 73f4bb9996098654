"""
Answer routing: pick a model for the question and effort level, assemble
context, call it with retries and classify failures for the end user.
"""
import asyncio
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from caselens.exceptions import (
    GenerationError,
    GenerationErrorCategory,
    GenerationRateLimitError,
    GenerationTimeoutError,
)
from caselens.generation.llm_factory import ModelRegistry, message_text
from caselens.generation.prompts import CITATION_INSTRUCTION, FOLLOW_UP_TEMPLATE, get_answer_prompt
from caselens.logging_config import get_logger
from caselens.observability import Phase, get_llm_callback_handler, track
from caselens.schemas.chat import (
    AnswerResult,
    ChatSource,
    ConversationTurn,
    EffortLevel,
    ModelChoice,
    QueryComplexity,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class EffortConfig:
    reasoning: Optional[str]  # reasoning_effort for the reasoning model
    max_tokens: int
    chunk_limit: int           # How many search results feed the prompt


EFFORT_CONFIG = {
    EffortLevel.QUICK: EffortConfig(reasoning=None, max_tokens=1500, chunk_limit=5),
    EffortLevel.STANDARD: EffortConfig(reasoning="low", max_tokens=2000, chunk_limit=8),
    EffortLevel.THOROUGH: EffortConfig(reasoning="medium", max_tokens=3000, chunk_limit=12),
    EffortLevel.DEEP: EffortConfig(reasoning="high", max_tokens=4000, chunk_limit=15),
}

# Phrases that signal the question needs legal reasoning rather than lookup
DEEP_REASONING_SIGNALS = [
    # Legal strategy
    "strategy", "advise", "recommend", "should i", "what are my options",
    "pros and cons", "risks", "liability", "exposure",
    # Complex legal analysis
    "analyze", "analysis", "compare", "distinguish", "apply the test",
    "legal test", "factors", "elements", "standard",
    # Case-specific reasoning
    "reasonable notice", "just cause", "constructive dismissal", "duty to mitigate",
    "termination clause", "enforceability", "severance calculation",
    "damages", "bad faith", "moral damages", "punitive",
    # Multi-step reasoning
    "how would a court", "what would happen if", "is there a case",
    "precedent", "what does the law say", "legal basis",
    "argue", "defence", "defense", "counter-argument",
]

USER_MESSAGES = {
    GenerationErrorCategory.AUTHENTICATION: (
        "API key error: the AI service rejected the request. "
        "Please check that your API keys are configured correctly in Settings."
    ),
    GenerationErrorCategory.RATE_LIMIT: (
        "Rate limit reached: the AI service is temporarily throttled. Please wait a moment and try again."
    ),
    GenerationErrorCategory.NETWORK: (
        "Network error: could not reach the AI service. "
        "Please check your internet connection and try again."
    ),
    GenerationErrorCategory.MODEL_UNAVAILABLE: (
        "Model unavailable: the requested AI model could not be found. This may be a temporary issue."
    ),
    GenerationErrorCategory.CONTENT_BLOCKED: (
        "The AI service flagged this request. Please try rephrasing your question."
    ),
    GenerationErrorCategory.GENERIC: (
        "The AI service could not complete this request. Please try again."
    ),
}

SOURCE_PATTERN = re.compile(r"\[Source (\d+)")
RETRY_AFTER_PATTERN = re.compile(r"retry in (\d+\.?\d*)s")


def classify_query(query: str) -> QueryComplexity:
    """Estimate how much reasoning a question needs from its length and wording."""
    lower = query.lower()
    word_count = len(query.split())
    signal_count = sum(1 for signal in DEEP_REASONING_SIGNALS if signal in lower)

    if word_count < 8 and signal_count == 0:
        return QueryComplexity.SIMPLE
    if signal_count >= 2:
        return QueryComplexity.DEEP
    if signal_count == 1 and word_count > 15:
        return QueryComplexity.DEEP
    if signal_count == 1:
        return QueryComplexity.MODERATE
    if word_count > 30:
        return QueryComplexity.MODERATE
    return QueryComplexity.SIMPLE


def classify_error_category(message: str) -> str:
    """Bucket a provider error message into a user-facing category."""
    msg = message.lower()
    if any(s in msg for s in ("api key", "api_key", "unauthorized", "401")):
        return GenerationErrorCategory.AUTHENTICATION
    if any(s in msg for s in ("rate limit", "429", "quota")):
        return GenerationErrorCategory.RATE_LIMIT
    if any(s in msg for s in ("network", "fetch", "timeout", "timed out", "econnrefused")):
        return GenerationErrorCategory.NETWORK
    if "model" in msg and ("not found" in msg or "does not exist" in msg):
        return GenerationErrorCategory.MODEL_UNAVAILABLE
    if any(s in msg for s in ("safety", "blocked", "content filter")):
        return GenerationErrorCategory.CONTENT_BLOCKED
    return GenerationErrorCategory.GENERIC


def classify_generation_error(error: BaseException, max_retry_wait: float = 5.0) -> GenerationError:
    """
    Convert a provider exception into a GenerationError with a safe user message.

    Rate limits and timeouts become their retryable subclasses, unless the
    provider asks us to wait longer than `max_retry_wait` seconds.
    """
    if isinstance(error, GenerationError):
        return error

    if isinstance(error, asyncio.TimeoutError):
        classified: GenerationError = GenerationTimeoutError(f"Model call timed out: {error}")
    else:
        text = str(error) or type(error).__name__
        category = classify_error_category(text)
        if category == GenerationErrorCategory.RATE_LIMIT:
            retry_after = None
            match = RETRY_AFTER_PATTERN.search(text.lower())
            if match:
                retry_after = float(match.group(1))
            if retry_after is not None and retry_after > max_retry_wait:
                log.warning("rate_limit_exceeded_max_wait", wait_required=retry_after, max_allowed=max_retry_wait)
                classified = GenerationError(text, category=category)
            else:
                classified = GenerationRateLimitError(text, retry_after=retry_after)
        elif category == GenerationErrorCategory.NETWORK and ("timeout" in text.lower() or "timed out" in text.lower()):
            classified = GenerationTimeoutError(text)
        else:
            classified = GenerationError(text, category=category)

    classified.user_message = USER_MESSAGES[classified.category]
    return classified


def smart_backoff(min_wait: float = 2.0, max_wait: float = 10.0):
    """
    Exponential backoff that honours a provider's retry-after hint.
    """
    exponential = wait_exponential(multiplier=1, min=min_wait, max=max_wait)

    def wait_smart_backoff(retry_state: RetryCallState) -> float:
        exp_wait = exponential(retry_state)
        last_exception = retry_state.outcome.exception()
        if isinstance(last_exception, GenerationRateLimitError) and last_exception.retry_after:
            log.info("rate_limit_smart_wait", retry_after=last_exception.retry_after)
            return max(exp_wait, last_exception.retry_after + 1.0)
        return exp_wait

    return wait_smart_backoff


def parse_citations(response: str, source_count: Optional[int] = None) -> List[int]:
    """Source numbers cited as [Source N], deduplicated and sorted."""
    numbers = {int(n) for n in SOURCE_PATTERN.findall(response)}
    if source_count is not None:
        numbers = {n for n in numbers if 1 <= n <= source_count}
    return sorted(numbers)


class AnswerRouter:
    """Stateless per call; conversation scoping is the caller's job."""

    def __init__(
        self,
        registry: ModelRegistry,
        timeout: float = 60.0,
        max_attempts: int = 6,
        max_retry_wait: float = 5.0,
        backoff_min: float = 2.0,
        backoff_max: float = 10.0,
        tracing: bool = False,
    ):
        self.registry = registry
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.max_retry_wait = max_retry_wait
        self.wait = smart_backoff(backoff_min, backoff_max)
        self.tracing = tracing
        self.prompt = get_answer_prompt()

    def _callbacks(self) -> list:
        # Built per call so the tracer picks up the current trace context
        return [get_llm_callback_handler(phase=Phase.GENERATION)] if self.tracing else []

    def select_model(self, complexity: QueryComplexity, effort_level: EffortLevel = EffortLevel.STANDARD) -> ModelChoice:
        """
        Effort overrides first (quick prefers fast, deep prefers reasoning),
        then deep questions go to the reasoning model when it is configured.

        Raises:
            GenerationError: If no model is configured at all
        """
        fast = self.registry.is_available(ModelChoice.FAST.value)
        reasoning = self.registry.is_available(ModelChoice.REASONING.value)

        if effort_level == EffortLevel.QUICK and fast:
            return ModelChoice.FAST
        if effort_level == EffortLevel.DEEP and reasoning:
            return ModelChoice.REASONING
        if complexity == QueryComplexity.DEEP and reasoning:
            return ModelChoice.REASONING
        if fast:
            return ModelChoice.FAST
        if reasoning:
            return ModelChoice.REASONING

        raise GenerationError(
            "No AI model configured. Set LLM__FAST_API_KEY or LLM__REASONING_API_KEY.",
            category=GenerationErrorCategory.MODEL_UNAVAILABLE,
            user_message=USER_MESSAGES[GenerationErrorCategory.MODEL_UNAVAILABLE],
        )

    def build_messages(
        self,
        query: str,
        conversation_history: Sequence[ConversationTurn],
        case_context: Optional[str] = None,
        has_sources: bool = False,
    ) -> list:
        context = ""
        if case_context:
            context += f"\nCase material:\n{case_context}"
        if has_sources:
            context += f"\n\nIMPORTANT: {CITATION_INSTRUCTION}"
        history = [(turn.role.value, turn.content) for turn in conversation_history]
        return self.prompt.format_messages(context=context, history=history, question=query)

    async def _invoke(self, llm, messages) -> str:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception_type((GenerationRateLimitError, GenerationTimeoutError)),
            reraise=True,
        ):
            with attempt:
                try:
                    ai_message = await asyncio.wait_for(
                        llm.ainvoke(messages, config={"callbacks": self._callbacks()}),
                        timeout=self.timeout,
                    )
                except Exception as e:
                    raise classify_generation_error(e, self.max_retry_wait) from e
        return message_text(ai_message.content)

    @track(name="answer_query", phase=Phase.QUERY)
    async def answer(
        self,
        query: str,
        conversation_history: Sequence[ConversationTurn] = (),
        case_context: Optional[str] = None,
        effort_level: EffortLevel = EffortLevel.STANDARD,
        sources: Optional[Sequence[ChatSource]] = None,
    ) -> AnswerResult:
        """
        Answer a question about the case.

        Raises:
            GenerationError: Classified, with a `user_message` safe to persist
        """
        effort = EFFORT_CONFIG[effort_level]
        complexity = classify_query(query)
        choice = self.select_model(complexity, effort_level)
        reasoning_effort = effort.reasoning if choice == ModelChoice.REASONING else None

        log.info(
            "answer_routing",
            complexity=complexity.value,
            effort_level=effort_level.value,
            model_choice=choice.value,
            sources=len(sources or []),
        )

        llm = self.registry.get(choice.value, max_tokens=effort.max_tokens, reasoning_effort=reasoning_effort)
        messages = self.build_messages(query, conversation_history, case_context, has_sources=bool(sources))

        try:
            response = await self._invoke(llm, messages)
        except Exception as e:
            error = classify_generation_error(e, self.max_retry_wait)
            if error.category not in USER_MESSAGES or not error.user_message:
                error.user_message = USER_MESSAGES[GenerationErrorCategory.GENERIC]
            log.error("answer_generation_failed", category=error.category, error=str(e))
            raise error from e

        citations = parse_citations(response, len(sources) if sources else None)
        log.info("answer_generated", model_choice=choice.value, answer_len=len(response), citations=len(citations))
        return AnswerResult(
            response=response,
            model=self.registry.model_name(choice.value),
            model_choice=choice,
            complexity=complexity,
            effort_level=effort_level,
            citations=citations,
        )

    @track(name="suggest_follow_ups", phase=Phase.QUERY)
    async def suggest_follow_ups(self, query: str, response: str) -> List[str]:
        """Up to three short follow-up questions; any failure yields none."""
        if not self.registry.is_available(ModelChoice.FAST.value):
            return []
        try:
            llm = self.registry.get(ModelChoice.FAST.value, max_tokens=300)
            prompt = FOLLOW_UP_TEMPLATE.format(question=query[:500], answer=response[:1000])
            result = await asyncio.wait_for(
                llm.ainvoke(prompt, config={"callbacks": self._callbacks()}), timeout=self.timeout
            )
        except Exception as e:
            log.warning("follow_up_generation_failed", error=str(e))
            return []

        lines = [line.strip() for line in message_text(result.content).split("\n")]
        return [line for line in lines if 0 < len(line) < 120][:3]
