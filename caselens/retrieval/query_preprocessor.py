from caselens.ingestion.text_normalizer import collapse_whitespace, normalize_text
from caselens.logging_config import get_logger
from caselens.exceptions import QueryPreprocessingError
from caselens.observability import track, Phase

log = get_logger(__name__)

# websearch_to_tsquery handles quotes, OR and leading "-"; longer input only adds noise
MAX_QUERY_CHARS = 1000


@track(name="preprocess_query", phase=Phase.RETRIEVAL)
def preprocess_query(query: str) -> str:
    """Normalize a search query to a single, bounded line."""
    try:
        normalized_query = collapse_whitespace(normalize_text(query))[:MAX_QUERY_CHARS]
        log.debug("query_preprocessed", original_length=len(query),
                  processed_length=len(normalized_query))
        return normalized_query
    except Exception as e:
        log.error("query_preprocessing_failed", error=str(e))
        raise QueryPreprocessingError(f"Failed to preprocess query: {e}") from e
