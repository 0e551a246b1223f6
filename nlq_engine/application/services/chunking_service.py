import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

SECTION_SPLIT = re.compile(r"\n\n+")
PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

SEMANTIC_SECTION_CHARS = 800
PARAGRAPH_GROUP_CHARS = 600
ROWS_PER_CHUNK = 10


@dataclass
class TextChunk:
    """A span of extracted text ready to be embedded"""
    text: str
    index: int
    metadata: Dict[str, Any] = field(default_factory=dict)


def file_type_of(filename: str) -> str:
    """Lowercased extension, or "txt" when there is none"""
    name = (filename or "").lower()
    if "." not in name:
        return "txt"
    return name.rsplit(".", 1)[-1]


class DocumentChunker:
    """
    Splits extracted text by document type. Resumes and contracts (pdf, docx)
    are grouped by section, CSV exports by rows, anything else by paragraph.
    Chunk indices are contiguous from 0.
    """

    def __init__(
        self,
        section_chars: int = SEMANTIC_SECTION_CHARS,
        paragraph_chars: int = PARAGRAPH_GROUP_CHARS,
        rows_per_chunk: int = ROWS_PER_CHUNK
    ):
        self.section_chars = section_chars
        self.paragraph_chars = paragraph_chars
        self.rows_per_chunk = rows_per_chunk

    def chunk(self, content: str, file_type: str) -> List[TextChunk]:
        if not content or not content.strip():
            return []

        if file_type in ("pdf", "docx"):
            return self._pack(SECTION_SPLIT.split(content), self.section_chars, "semantic_section")
        if file_type == "csv":
            return self._chunk_rows(content)
        return self._pack(PARAGRAPH_SPLIT.split(content), self.paragraph_chars, "paragraph_group")

    @staticmethod
    def _pack(pieces: List[str], max_chars: int, chunk_type: str) -> List[TextChunk]:
        """Greedily join pieces until the next one would overflow max_chars"""
        chunks: List[TextChunk] = []
        current = ""

        for piece in pieces:
            if current and len(current) + len(piece) > max_chars:
                if current.strip():
                    chunks.append(TextChunk(current.strip(), len(chunks), {"type": chunk_type}))
                current = piece
            else:
                current = f"{current}\n\n{piece}" if current else piece

        if current.strip():
            chunks.append(TextChunk(current.strip(), len(chunks), {"type": chunk_type}))

        return chunks

    def _chunk_rows(self, content: str) -> List[TextChunk]:
        lines = [line for line in content.splitlines() if line.strip()]
        header, rows = lines[0], lines[1:]
        chunks: List[TextChunk] = []

        for start in range(0, len(rows), self.rows_per_chunk):
            group = rows[start:start + self.rows_per_chunk]
            chunks.append(TextChunk(
                text="\n".join([header] + group),
                index=len(chunks),
                metadata={
                    "type": "data_rows",
                    "row_start": start + 1,
                    "row_end": start + len(group)
                }
            ))

        # Header-only export still gets one chunk so the columns are searchable
        if not chunks:
            chunks.append(TextChunk(header, 0, {"type": "data_rows", "row_start": 0, "row_end": 0}))

        return chunks
