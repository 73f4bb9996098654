"""
MCP Server exposing case document search and grounded Q&A as tools for AI assistants.

Uses the same service container as the REST API, with equivalent error
handling, logging, and observability. The container is passed in by the
caller; `main()` builds it from settings for the stdio entry point.
"""
import os
import uuid
from typing import Optional

# Suppress Opik SDK console output (it prints to stdout which breaks MCP JSON protocol)
# Must be set BEFORE importing opik
os.environ["OPIK_CONSOLE_LOGGING_LEVEL"] = "CRITICAL"

from fastmcp import FastMCP

from caselens.config import get_settings
from caselens.container import Services, build_services
from caselens.exceptions import (
    EmbeddingError,
    GenerationError,
    QueryPreprocessingError,
    RetrievalException,
    StorageException,
)
from caselens.generation.router import EFFORT_CONFIG
from caselens.logging_config import configure_logging, get_logger
from caselens.observability import configure_observability, track, Phase
from caselens.retrieval.retriever import format_search_context, results_to_sources
from caselens.schemas.chat import EffortLevel, chat_sources_adapter
from caselens.schemas.files import FileType

log = get_logger(__name__)


def _error(error_type: str, message: str) -> dict:
    return {"error": True, "error_type": error_type, "message": message}


class CaseTools:
    """The MCP tool implementations, bound to one service container."""

    def __init__(self, services: Services):
        self.services = services

    @track(name="mcp_search_documents", phase=Phase.RETRIEVAL)
    async def search_documents(
        self,
        query: str,
        project_id: str,
        file_type: Optional[str] = None,
        limit: int = 8,
    ) -> dict:
        """
        Search a project's processed documents with hybrid full-text + semantic search.

        Args:
            query: What to look for; supports quoted phrases, OR and -exclusions
            project_id: UUID of the case project
            file_type: Optional coarse type filter (pdf, image, audio, video, document, text, other)
            limit: Number of results (1-100, default: 8)

        Returns:
            A dict with the ranked results, each with file name, page and content.
        """
        log.info("mcp_search_tool_called", project_id=project_id, limit=limit)
        try:
            results = await self.services.search.search_documents(
                query,
                project_id=uuid.UUID(project_id),
                file_type=FileType(file_type) if file_type else None,
                limit=max(1, min(limit, 100)),
            )
            return {
                "query": query,
                "results": [r.model_dump(mode="json") for r in results],
            }

        except ValueError as e:
            log.error("mcp_invalid_argument", error=str(e))
            return _error("ValueError", "Invalid project_id or file_type.")

        except QueryPreprocessingError as e:
            log.error("mcp_query_preprocessing_error", error=str(e))
            return _error("QueryPreprocessingError", "Invalid query format.")

        except RetrievalException as e:
            log.error("mcp_retrieval_error", error=str(e))
            return _error("RetrievalError", "Search service temporarily unavailable. Please retry.")

        except StorageException as e:
            log.error("mcp_storage_error", error=str(e))
            return _error("StorageException", "Database service unavailable. Please retry.")

        except Exception as e:
            log.exception("mcp_unexpected_error", error=str(e))
            return _error("UnexpectedError", "An unexpected error occurred.")

    @track(name="mcp_ask_case", phase=Phase.QUERY)
    async def ask_case(
        self,
        question: str,
        project_id: str,
        effort_level: str = "standard",
    ) -> dict:
        """
        Ask a question about a case and get an answer grounded in its documents.

        The conversation history of the project is not used or modified.

        Args:
            question: The question to answer
            project_id: UUID of the case project
            effort_level: quick, standard, thorough or deep

        Returns:
            A dict containing the answer, the model used, the cited sources and
            up to three suggested follow-up questions.
        """
        log.info("mcp_ask_tool_called", project_id=project_id, effort_level=effort_level)
        try:
            effort = EffortLevel(effort_level)
            sources = []
            context = None
            try:
                results = await self.services.search.search_documents(
                    question, project_id=uuid.UUID(project_id), limit=EFFORT_CONFIG[effort].chunk_limit
                )
                context = format_search_context(results) or None
                sources = results_to_sources(results)
            except (RetrievalException, EmbeddingError) as e:
                log.warning("mcp_search_failed", error=str(e))

            result = await self.services.router.answer(
                question,
                conversation_history=[],
                case_context=context,
                effort_level=effort,
                sources=sources or None,
            )
            cited = set(result.citations)
            follow_ups = await self.services.router.suggest_follow_ups(question, result.response)
            return {
                "question": question,
                "answer": result.response,
                "model": result.model,
                "complexity": result.complexity.value,
                "effort_level": result.effort_level.value,
                "sources": chat_sources_adapter.dump_python(
                    [s for s in sources if s.source_index in cited], mode="json"
                ),
                "follow_ups": follow_ups,
            }

        except ValueError as e:
            log.error("mcp_invalid_argument", error=str(e))
            return _error("ValueError", "Invalid project_id or effort_level.")

        except GenerationError as e:
            log.error("mcp_generation_error", category=e.category, error=str(e))
            return _error("GenerationError", e.user_message)

        except Exception as e:
            log.exception("mcp_unexpected_error", error=str(e))
            return _error("UnexpectedError", "An unexpected error occurred.")


def create_mcp_server(services: Services) -> FastMCP:
    """Register the case tools, bound to `services`, on a new FastMCP server."""
    tools = CaseTools(services)
    mcp = FastMCP("caselens")
    mcp.tool(tools.search_documents)
    mcp.tool(tools.ask_case)
    return mcp


def main() -> None:
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.json_logs,
        use_stderr=True,  # MCP uses stdout for JSON protocol
    )
    configure_observability(settings)
    create_mcp_server(build_services(settings)).run()


if __name__ == "__main__":
    main()
