"""
Text extraction for uploaded files.

Each coarse file type has a primary strategy and, where one exists, a
fallback. Extraction only raises ExtractionError once every strategy for the
type has failed; "no text found" is a normal, empty result.
"""
import asyncio
import base64
import io
from typing import List, Optional, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from caselens.exceptions import ExtractionError
from caselens.generation.llm_factory import message_text
from caselens.generation.prompts import OCR_INSTRUCTION
from caselens.ingestion.text_normalizer import normalize_text
from caselens.logging_config import get_logger
from caselens.schemas.chunks import ExtractedDocument, TranscriptSegment
from caselens.schemas.files import FileType, detect_file_type

log = get_logger(__name__)

PAGE_SEPARATOR = "\n\n"


class Transcriber(Protocol):
    async def transcribe(self, blob: bytes, file_name: str) -> List[TranscriptSegment]:
        ...


class WhisperTranscriber:
    """Speech-to-text through the OpenAI transcription endpoint."""

    def __init__(self, client, model: str = "whisper-1", timeout: float = 120.0):
        # client: openai.AsyncOpenAI
        self.client = client
        self.model = model
        self.timeout = timeout

    async def transcribe(self, blob: bytes, file_name: str) -> List[TranscriptSegment]:
        response = await self.client.audio.transcriptions.create(
            model=self.model,
            file=(file_name, blob),
            response_format="verbose_json",
            timeout=self.timeout,
        )
        segments = getattr(response, "segments", None) or []
        if segments:
            return [
                TranscriptSegment(text=s.text.strip(), start=float(s.start), end=float(s.end))
                for s in segments
                if s.text and s.text.strip()
            ]
        text = (getattr(response, "text", "") or "").strip()
        if not text:
            return []
        return [TranscriptSegment(text=text, start=0.0, end=float(getattr(response, "duration", 0.0) or 0.0))]


class VisionOcr:
    """OCR by asking a vision-capable chat model to transcribe an image."""

    def __init__(self, llm: BaseChatModel, timeout: float = 120.0):
        self.llm = llm
        self.timeout = timeout

    async def read_image(self, image: bytes, mime_type: str = "image/png", kind: str = "image") -> str:
        encoded = base64.b64encode(image).decode("ascii")
        message = HumanMessage(content=[
            {"type": "text", "text": OCR_INSTRUCTION.format(kind=kind)},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
        ])
        response = await asyncio.wait_for(self.llm.ainvoke([message]), timeout=self.timeout)
        text = message_text(response.content).strip()
        # Models sometimes answer the "empty string" instruction literally
        if text in ('""', "''"):
            return ""
        return text


class Extractor:
    """Turns a raw blob plus its declared type into plain text."""

    def __init__(
        self,
        ocr: Optional[VisionOcr] = None,
        transcriber: Optional[Transcriber] = None,
        max_ocr_pages: int = 20,
        timeout: float = 120.0,
    ):
        self.ocr = ocr
        self.transcriber = transcriber
        self.max_ocr_pages = max_ocr_pages
        self.timeout = timeout

    async def extract(
        self,
        blob: bytes,
        declared_type: Optional[str],
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> str:
        document = await self.extract_document(blob, declared_type, file_name, mime_type)
        return document.text

    async def extract_document(
        self,
        blob: bytes,
        declared_type: Optional[str],
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> ExtractedDocument:
        file_type = detect_file_type(file_name, declared_type, mime_type)
        log.debug("extraction_started", file_name=file_name, file_type=file_type.value, size=len(blob))

        if file_type == FileType.PDF:
            document = await self._extract_pdf(blob, file_name)
        elif file_type == FileType.IMAGE:
            document = await self._extract_image(blob, file_name, mime_type)
        elif file_type in (FileType.AUDIO, FileType.VIDEO):
            document = await self._transcribe(blob, file_name, file_type)
        elif file_type == FileType.DOCUMENT:
            document = self._extract_word_document(blob, file_name)
        elif file_type == FileType.TEXT:
            document = ExtractedDocument(
                text=normalize_text(_decode_text(blob)), file_type=file_type.value, method="text_decode"
            )
        else:
            document = ExtractedDocument(
                text=normalize_text(_best_effort_decode(blob)), file_type=file_type.value, method="best_effort_decode"
            )

        log.info(
            "extraction_completed",
            file_name=file_name,
            file_type=document.file_type,
            method=document.method,
            chars=len(document.text),
        )
        return document

    # --- PDF ---

    async def _extract_pdf(self, blob: bytes, file_name: str) -> ExtractedDocument:
        try:
            pages = await asyncio.to_thread(_pdf_text_layer, blob)
            text, page_breaks = _join_pages(pages)
            if text.strip():
                return ExtractedDocument(
                    text=text, file_type=FileType.PDF.value, method="pdf_text_layer", page_breaks=page_breaks
                )
            log.info("pdf_text_layer_empty", file_name=file_name, pages=len(pages))
        except Exception as e:
            log.warning("pdf_text_layer_failed", file_name=file_name, error=str(e))

        return await self._ocr_pdf(blob, file_name)

    async def _ocr_pdf(self, blob: bytes, file_name: str) -> ExtractedDocument:
        if self.ocr is None:
            raise ExtractionError(f"No text layer in {file_name} and no OCR provider is configured")

        try:
            images = await asyncio.to_thread(_render_pdf_pages, blob, self.max_ocr_pages)
        except Exception as e:
            raise ExtractionError(f"Failed to render {file_name} for OCR: {e}") from e

        pages: List[str] = []
        failures = 0
        for page_number, image in enumerate(images, start=1):
            try:
                pages.append(await self.ocr.read_image(image, "image/png", kind="document page"))
            except Exception as e:
                failures += 1
                pages.append("")
                log.warning("pdf_page_ocr_failed", file_name=file_name, page=page_number, error=str(e))

        if images and failures == len(images):
            raise ExtractionError(f"OCR failed on every page of {file_name}")

        text, page_breaks = _join_pages(pages)
        return ExtractedDocument(text=text, file_type=FileType.PDF.value, method="pdf_ocr", page_breaks=page_breaks)

    # --- Images ---

    async def _extract_image(self, blob: bytes, file_name: str, mime_type: Optional[str]) -> ExtractedDocument:
        if self.ocr is None:
            raise ExtractionError(f"No OCR provider configured for image {file_name}")
        if not mime_type or not mime_type.startswith("image/"):
            mime_type = "image/png"
        try:
            text = await self.ocr.read_image(blob, mime_type, kind="image")
        except Exception as e:
            raise ExtractionError(f"OCR failed for {file_name}: {e}") from e
        return ExtractedDocument(text=normalize_text(text), file_type=FileType.IMAGE.value, method="image_ocr")

    # --- Audio / video ---

    async def _transcribe(self, blob: bytes, file_name: str, file_type: FileType) -> ExtractedDocument:
        if self.transcriber is None:
            raise ExtractionError(f"No transcription provider configured for {file_name}")
        try:
            segments = await asyncio.wait_for(self.transcriber.transcribe(blob, file_name), timeout=self.timeout)
        except Exception as e:
            raise ExtractionError(f"Transcription failed for {file_name}: {e}") from e

        cleaned = []
        for segment in segments:
            text = normalize_text(segment.text).replace("\n", " ")
            if text:
                cleaned.append(TranscriptSegment(text=text, start=segment.start, end=segment.end))
        return ExtractedDocument(
            text="\n".join(s.text for s in cleaned),
            file_type=file_type.value,
            method="transcription",
            segments=cleaned,
        )

    # --- Word documents ---

    def _extract_word_document(self, blob: bytes, file_name: str) -> ExtractedDocument:
        try:
            from docx import Document
            document = Document(io.BytesIO(blob))
            paragraphs = [p.text for p in document.paragraphs if p.text.strip()]
            return ExtractedDocument(
                text=normalize_text(PAGE_SEPARATOR.join(paragraphs)),
                file_type=FileType.DOCUMENT.value,
                method="docx",
            )
        except Exception as e:
            # .doc/.rtf or a corrupt .docx; fall back to reading it as text
            log.warning("docx_extraction_failed", file_name=file_name, error=str(e))
        return ExtractedDocument(
            text=normalize_text(_best_effort_decode(blob)),
            file_type=FileType.DOCUMENT.value,
            method="best_effort_decode",
        )


def _pdf_text_layer(blob: bytes) -> List[str]:
    """Native text of each page through LangChain's PyMuPDF parser."""
    from langchain_community.document_loaders.parsers import PyMuPDFParser
    from langchain_core.documents.base import Blob

    parser = PyMuPDFParser()
    documents = parser.parse(Blob.from_data(blob, mime_type="application/pdf"))
    return [doc.page_content for doc in documents]


def _render_pdf_pages(blob: bytes, max_pages: int) -> List[bytes]:
    """Rasterize pages to PNG at 2x scale for OCR."""
    import fitz  # PyMuPDF

    images = []
    with fitz.open(stream=blob, filetype="pdf") as pdf:
        if pdf.needs_pass:
            raise ExtractionError("PDF is password protected")
        matrix = fitz.Matrix(2.0, 2.0)
        for index, page in enumerate(pdf):
            if index >= max_pages:
                log.warning("pdf_ocr_page_limit", pages=pdf.page_count, limit=max_pages)
                break
            images.append(page.get_pixmap(matrix=matrix).tobytes("png"))
    return images


def _join_pages(pages: List[str]) -> tuple:
    """
    Join normalized page texts and record where each page after the first
    starts. Blank pages contribute no text but still advance the page count.
    """
    parts: List[str] = []
    page_breaks: List[int] = []
    length = 0
    for index, page in enumerate(pages):
        page_text = normalize_text(page)
        if index > 0:
            page_breaks.append(length + len(PAGE_SEPARATOR) if parts and page_text else length)
        if not page_text:
            continue
        if parts:
            length += len(PAGE_SEPARATOR)
        parts.append(page_text)
        length += len(page_text)
    return PAGE_SEPARATOR.join(parts), page_breaks


def _decode_text(blob: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-16"):
        try:
            if encoding == "utf-16" and not blob.startswith((b"\xff\xfe", b"\xfe\xff")):
                continue
            return blob.decode(encoding)
        except UnicodeDecodeError:
            continue
    return blob.decode("latin-1")


def _best_effort_decode(blob: bytes) -> str:
    try:
        text = blob.decode("utf-8")
    except UnicodeDecodeError:
        return ""
    # Binary formats that happen to be valid UTF-8 are mostly control bytes
    if text and text.count("\x00") > len(text) // 100:
        return ""
    return text
