"""
Hierarchical (parent/child) chunking.

Parents are paragraph-sized context units, children are the smaller spans
retrieval matches on. Every span is an exact slice of the input text:
parents partition the text and children partition their parent, so
`text[char_start:char_end] == content` holds for every draft.
"""
import bisect
import re
from typing import List, Optional, Sequence, Tuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from caselens.exceptions import ChunkingError
from caselens.logging_config import get_logger
from caselens.observability import track, Phase
from caselens.schemas.chunks import ChunkDraft, ChunkType, TranscriptSegment

log = get_logger(__name__)

SEPARATORS = ["\n\n", "\n", ". ", "? ", "! ", "; ", " ", ""]

_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$")
_CAPS_HEADING = re.compile(r"^(?=.*[A-Z]{3})[A-Z0-9][A-Z0-9 .,:;&()'/-]{2,79}$")

Span = Tuple[int, int]


class HierarchicalChunker:
    def __init__(self, parent_size: int = 1000, child_size: int = 300):
        if child_size >= parent_size:
            raise ValueError("child_size must be smaller than parent_size")
        self.parent_size = parent_size
        self.child_size = child_size
        self._parent_splitter = _splitter(parent_size)
        self._child_splitter = _splitter(child_size)

    @track(name="chunk_text", phase=Phase.INGESTION)
    def chunk(self, text: str, page_breaks: Optional[Sequence[int]] = None) -> List[ChunkDraft]:
        """
        Split text into parent chunks, each followed by its children.

        Args:
            text: Normalized extracted text
            page_breaks: Offsets at which pages 2..n start, if known
        """
        if not text or not text.strip():
            return []

        try:
            headings = _find_headings(text)
            drafts: List[ChunkDraft] = []
            parent_spans = _spans(self._parent_splitter, text, 0, len(text))
            for parent_start, parent_end in parent_spans:
                parent = ChunkDraft(
                    content=text[parent_start:parent_end],
                    chunk_type=ChunkType.PARENT,
                    chunk_index=len(drafts),
                    char_start=parent_start,
                    char_end=parent_end,
                    page_number=_page_number(parent_start, page_breaks),
                    section_heading=_heading_at(parent_start, headings),
                )
                drafts.append(parent)

                # A parent that already fits a child is its own finest unit
                if parent_end - parent_start <= self.child_size:
                    continue

                for child_start, child_end in _spans(self._child_splitter, text, parent_start, parent_end):
                    drafts.append(ChunkDraft(
                        content=text[child_start:child_end],
                        chunk_type=ChunkType.CHILD,
                        chunk_index=len(drafts),
                        parent_index=parent.chunk_index,
                        char_start=child_start,
                        char_end=child_end,
                        page_number=_page_number(child_start, page_breaks),
                        section_heading=_heading_at(child_start, headings),
                    ))
        except ChunkingError:
            raise
        except Exception as e:
            raise ChunkingError(f"Failed to chunk text: {e}") from e

        log.info(
            "chunking_complete",
            chars=len(text),
            parents=len(parent_spans),
            children=len(drafts) - len(parent_spans),
        )
        return drafts

    @track(name="chunk_transcript", phase=Phase.INGESTION)
    def chunk_transcript(self, segments: Sequence[TranscriptSegment]) -> List[ChunkDraft]:
        """
        Chunk a timed transcript whose text is the segments joined by newlines.

        Spans never cut through a segment, so each chunk's timestamps are the
        start of its first segment and the end of its last.
        """
        segments = [s for s in segments if s.text]
        if not segments:
            return []

        # Character span of every segment inside "\n".join(texts)
        seg_spans: List[Span] = []
        offset = 0
        for segment in segments:
            seg_spans.append((offset, offset + len(segment.text)))
            offset += len(segment.text) + 1
        total = offset - 1

        drafts: List[ChunkDraft] = []
        text = "\n".join(s.text for s in segments)
        parent_groups = _group_segments(seg_spans, 0, len(segments), self.parent_size)
        for p_first, p_last in parent_groups:
            p_start, p_end = _group_span(seg_spans, p_first, p_last, total)
            parent = ChunkDraft(
                content=text[p_start:p_end],
                chunk_type=ChunkType.PARENT,
                chunk_index=len(drafts),
                char_start=p_start,
                char_end=p_end,
                timestamp_start=segments[p_first].start,
                timestamp_end=segments[p_last].end,
            )
            drafts.append(parent)
            if p_end - p_start <= self.child_size:
                continue

            for c_first, c_last in _group_segments(seg_spans, p_first, p_last + 1, self.child_size):
                c_start, c_end = _group_span(seg_spans, c_first, c_last, total)
                # The last child of a parent ends where the parent ends
                if c_last == p_last:
                    c_end = p_end
                drafts.append(ChunkDraft(
                    content=text[c_start:c_end],
                    chunk_type=ChunkType.CHILD,
                    chunk_index=len(drafts),
                    parent_index=parent.chunk_index,
                    char_start=c_start,
                    char_end=c_end,
                    timestamp_start=segments[c_first].start,
                    timestamp_end=segments[c_last].end,
                ))

        log.info("transcript_chunking_complete", segments=len(segments), chunks=len(drafts))
        return drafts


def _splitter(size: int) -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(
        chunk_size=size,
        chunk_overlap=0,
        length_function=len,
        separators=SEPARATORS,
        keep_separator="end",
    )


def _spans(splitter: RecursiveCharacterTextSplitter, text: str, start: int, end: int) -> List[Span]:
    """
    Turn splitter output for text[start:end] back into contiguous offsets.

    Each piece is located in the source; a span runs from its piece to the
    next piece, so whitespace the splitter stripped stays with the span
    before it and nothing is lost.
    """
    window = text[start:end]
    starts: List[int] = []
    cursor = 0
    for piece in splitter.split_text(window):
        found = window.find(piece, cursor)
        if found < 0:
            raise ChunkingError(f"Splitter produced text not found in source near offset {start + cursor}")
        starts.append(found)
        cursor = found + len(piece)

    if not starts:
        return [(start, end)]
    starts[0] = 0
    bounds = starts + [len(window)]
    return [(start + a, start + b) for a, b in zip(bounds, bounds[1:]) if b > a]


def _group_segments(seg_spans: List[Span], first: int, stop: int, size: int) -> List[Tuple[int, int]]:
    """Greedy grouping of whole segments [first, stop) into runs of about `size` chars."""
    groups = []
    group_first = first
    for i in range(first, stop):
        group_len = seg_spans[i][1] - seg_spans[group_first][0]
        if i > group_first and group_len > size:
            groups.append((group_first, i - 1))
            group_first = i
    groups.append((group_first, stop - 1))
    return groups


def _group_span(seg_spans: List[Span], first: int, last: int, total: int) -> Span:
    # Include the newline that follows the group so spans stay contiguous
    end = seg_spans[last][1] + 1 if last + 1 < len(seg_spans) else total
    return seg_spans[first][0], end


def _page_number(offset: int, page_breaks: Optional[Sequence[int]]) -> Optional[int]:
    if not page_breaks:
        return None
    return bisect.bisect_right(list(page_breaks), offset) + 1


def _find_headings(text: str) -> List[Tuple[int, str]]:
    """Offsets and titles of markdown or ALL-CAPS heading lines."""
    headings = []
    offset = 0
    for line in text.split("\n"):
        stripped = line.strip()
        match = _MARKDOWN_HEADING.match(stripped)
        if match:
            headings.append((offset, match.group(1)))
        elif _CAPS_HEADING.match(stripped):
            headings.append((offset, stripped.rstrip(":")))
        offset += len(line) + 1
    return headings


def _heading_at(offset: int, headings: List[Tuple[int, str]]) -> Optional[str]:
    heading = None
    for heading_offset, title in headings:
        if heading_offset > offset:
            break
        heading = title
    return heading
