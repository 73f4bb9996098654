from enum import Enum
from typing import Optional, List, Any
import functools
import os
import inspect

from caselens.logging_config import get_logger
import opik

log = get_logger(__name__)


class Phase(Enum):
    """
    Standardized phases for observability tagging.
    """
    INGESTION = "ingestion"
    RETRIEVAL = "retrieval"
    QUERY = "query"            # Chat orchestration
    GENERATION = "generation"  # Model calls


def configure_observability(settings) -> bool:
    """
    Central entry point for observability configuration.

    Returns True when Opik was configured. When disabled, tracing is switched
    off at runtime so @track wraps calls without recording or exporting them.
    """
    if not settings.opik.enabled:
        opik.set_tracing_active(False)
        log.info("observability_disabled")
        return False

    opik.set_tracing_active(True)
    os.environ["OPIK_PROJECT_NAME"] = settings.opik.project_name
    if settings.opik.api_key:
        os.environ["OPIK_API_KEY"] = settings.opik.api_key
    if settings.opik.workspace:
        os.environ["OPIK_WORKSPACE"] = settings.opik.workspace
    opik.configure(use_local=False)
    log.info("observability_configured", provider="opik", project=settings.opik.project_name)
    return True


def track(name: Optional[str] = None, phase: Optional[Phase] = None, tags: Optional[List[str]] = None):
    """
    Vendor-agnostic tracking decorator.

    Args:
        name: The name of the trace/span. Defaults to function name.
        phase: High-level phase enum (mapped to phase:X tag).
        tags: Additional list of string tags.
    """
    def decorator(func):
        static_tags = tags.copy() if tags else []
        if phase:
            static_tags.append(f"phase:{phase.value}")

        traced = opik.track(name=name or func.__name__, tags=static_tags)(func)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await traced(*args, **kwargs)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            return traced(*args, **kwargs)
        return sync_wrapper
    return decorator


def get_llm_callback_handler(phase: Optional[Phase] = None, tags: Optional[List[str]] = None) -> Any:
    """
    Returns a LangChain callback handler for observability (vendor-agnostic wrapper).
    """
    from opik.integrations.langchain import OpikTracer

    final_tags = list(tags or [])
    if phase:
        final_tags.append(f"phase:{phase.value}")
    return OpikTracer(tags=final_tags)
