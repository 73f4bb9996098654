import asyncio
from typing import List, Set

from langchain_core.embeddings import Embeddings
from pydantic import BaseModel, Field, PrivateAttr
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from caselens.config import EmbeddingProvider, Settings
from caselens.exceptions import EmbeddingError
from caselens.logging_config import get_logger
from caselens.observability import track, Phase

log = get_logger(__name__)

# text-embedding-3-* accept 8191 tokens; ~4 chars per token
MAX_EMBED_CHARS = 8191 * 4


def build_embeddings(settings: Settings) -> Embeddings:
    """
    Factory to return the configured embedding model.
    Called once at startup; the instance is shared by ingestion and retrieval.
    """
    embedding = settings.embedding
    timeout = settings.timeout.embedding_seconds

    try:
        if embedding.provider == EmbeddingProvider.HUGGINGFACE:
            # Lazy import to avoid loading torch when using OpenAI
            from langchain_huggingface import HuggingFaceEmbeddings
            log.info("embedder_initialized", provider=embedding.provider.value, model=embedding.model)
            return HuggingFaceEmbeddings(model_name=embedding.model)

        elif embedding.provider == EmbeddingProvider.OPENAI:
            from langchain_openai import OpenAIEmbeddings
            log.info("embedder_initialized", provider=embedding.provider.value, model=embedding.model)
            return OpenAIEmbeddings(
                model=embedding.model,
                api_key=embedding.api_key,
                request_timeout=timeout,
                max_retries=0,  # Retries happen per batch in BatchEmbedder
            )

        else:
            raise EmbeddingError(f"Unsupported embedding provider: {embedding.provider.value}")

    except ImportError as e:
        log.error("embedder_import_failed", provider=embedding.provider.value, error=str(e))
        raise EmbeddingError(f"Missing dependency for {embedding.provider.value}: {e}")
    except EmbeddingError:
        raise
    except Exception as e:
        log.error("embedder_init_failed", provider=embedding.provider.value, error=str(e))
        raise EmbeddingError(f"Failed to initialize embedder: {e}")


class EmbeddingBatch(BaseModel):
    """
    Vectors aligned one-to-one with the input texts.

    Positions in `failed_indices` (provider call failed after retries) and
    `skipped_indices` (blank text) hold zero vectors.
    """
    vectors: List[List[float]]
    failed_indices: List[int] = Field(default_factory=list)
    skipped_indices: List[int] = Field(default_factory=list)  # Blank input, never sent

    _zero_indices: Set[int] = PrivateAttr(default_factory=set)

    def model_post_init(self, __context) -> None:
        self._zero_indices = set(self.failed_indices) | set(self.skipped_indices)

    def is_zero(self, index: int) -> bool:
        return index in self._zero_indices


class BatchEmbedder:
    """Order-preserving batched embedding with per-batch retries."""

    def __init__(
        self,
        embeddings: Embeddings,
        dimension: int,
        batch_size: int = 100,
        max_concurrency: int = 2,
        max_attempts: int = 3,
        timeout: float = 30.0,
        retry_wait: float = 1.0,
    ):
        self.embeddings = embeddings
        self.retry_wait = retry_wait
        self.dimension = dimension
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @track(name="embed_batch", phase=Phase.INGESTION)
    async def embed_batch(self, texts: List[str]) -> EmbeddingBatch:
        """
        Embed texts in provider-sized batches.

        Always returns exactly len(texts) vectors in input order. Raises
        EmbeddingError only when nothing could be embedded at all.
        """
        zero = [0.0] * self.dimension
        vectors: List[List[float]] = [zero] * len(texts)
        prepared = [t.strip()[:MAX_EMBED_CHARS] for t in texts]

        skipped = [i for i, t in enumerate(prepared) if not t]
        pending = [i for i, t in enumerate(prepared) if t]
        batches = [pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)]

        results = await asyncio.gather(
            *(self._embed_indices(batch, prepared) for batch in batches),
            return_exceptions=True,
        )

        failed: List[int] = []
        for batch, result in zip(batches, results):
            if isinstance(result, BaseException):
                log.error("embedding_batch_failed", batch_size=len(batch), first_index=batch[0], error=str(result))
                failed.extend(batch)
                continue
            for index, vector in zip(batch, result):
                vectors[index] = vector

        if pending and len(failed) == len(pending):
            raise EmbeddingError(f"All {len(pending)} texts failed to embed")

        log.info(
            "embedding_complete",
            texts=len(texts),
            batches=len(batches),
            failed=len(failed),
            skipped=len(skipped),
        )
        return EmbeddingBatch(vectors=vectors, failed_indices=failed, skipped_indices=skipped)

    async def _embed_indices(self, indices: List[int], prepared: List[str]) -> List[List[float]]:
        batch_texts = [prepared[i] for i in indices]
        async with self._semaphore:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.retry_wait, min=self.retry_wait, max=8),
                reraise=True,
            ):
                with attempt:
                    result = await asyncio.wait_for(
                        self.embeddings.aembed_documents(batch_texts), timeout=self.timeout
                    )
        if len(result) != len(batch_texts):
            raise EmbeddingError(f"Provider returned {len(result)} vectors for {len(batch_texts)} texts")
        for vector in result:
            if len(vector) != self.dimension:
                raise EmbeddingError(f"Dimension mismatch: got {len(vector)}, expected {self.dimension}")
        return result

    @track(name="embed_query", phase=Phase.RETRIEVAL)
    async def embed_query(self, query: str) -> List[float]:
        """
        Convert query text to an embedding vector with the ingestion model.

        Raises:
            EmbeddingError: If embedding fails or the dimension is wrong
        """
        if not query:
            raise EmbeddingError("Cannot embed empty query")

        try:
            embedding = await asyncio.wait_for(self.embeddings.aembed_query(query), timeout=self.timeout)
        except Exception as e:
            log.error("query_embedding_failed", error=str(e))
            raise EmbeddingError(f"Failed to embed query: {e}") from e

        if len(embedding) != self.dimension:
            raise EmbeddingError(
                f"Dimension mismatch: got {len(embedding)}, expected {self.dimension}"
            )
        return embedding
