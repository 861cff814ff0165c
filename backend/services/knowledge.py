"""
Knowledge collaborator - purchasing policy search.

Loads ``.md`` / ``.txt`` documents from a directory, splits them into
overlapping fixed-size chunks and answers queries with BM25 (rank_bm25).

Usage:
    kb = LocalKnowledgeBase("data/knowledge")
    kb.load()
    chunks = await kb.search("monto máximo sin aprobación", limit=5)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rank_bm25 import BM25Okapi

logger = logging.getLogger(__name__)

CHUNK_SIZE = 800
CHUNK_OVERLAP = 100

STOPWORDS = {
    # Spanish
    "el", "la", "los", "las", "un", "una", "unos", "unas", "de", "del", "al",
    "y", "o", "en", "con", "por", "para", "que", "se", "es", "son", "lo",
    "su", "sus", "como", "mas", "más", "pero", "si", "no", "me", "mi", "cual",
    # English
    "a", "an", "the", "and", "or", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "be", "it", "this", "that", "what", "how",
}


@dataclass
class KnowledgeChunk:
    content: str
    source: str
    chunk_index: int = 0
    score: float = 0.0

    def to_dict(self) -> dict:
        return {"content": self.content, "source": self.source}


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens (accents kept), stopwords and 1-char tokens removed."""
    tokens = re.findall(r"\w+", text.lower())
    return [t for t in tokens if t not in STOPWORDS and len(t) > 1]


def split_into_chunks(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """Fixed-size character windows; consecutive windows share ``overlap`` characters."""
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")

    chunks = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
        start = end - overlap
    return chunks


class KnowledgeBase(ABC):

    @abstractmethod
    async def search(self, query: str, limit: int = 5) -> List[KnowledgeChunk]:
        """Best matching chunks, most relevant first."""


class LocalKnowledgeBase(KnowledgeBase):
    """In-process BM25 index over a directory of documents."""

    def __init__(self, directory: str, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP):
        self.directory = Path(directory)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._chunks: List[KnowledgeChunk] = []
        self._bm25: Optional[BM25Okapi] = None

    def __len__(self) -> int:
        return len(self._chunks)

    def load(self) -> int:
        """(Re)build the index. Returns the number of chunks indexed."""
        self._chunks = []
        if not self.directory.is_dir():
            logger.warning(f"Knowledge directory not found: {self.directory}")
            self._bm25 = None
            return 0

        for path in sorted(self.directory.iterdir()):
            if path.suffix.lower() not in (".md", ".txt"):
                continue
            text = path.read_text(encoding="utf-8")
            for i, piece in enumerate(split_into_chunks(text, self.chunk_size, self.chunk_overlap)):
                self._chunks.append(KnowledgeChunk(content=piece, source=path.name, chunk_index=i))

        corpus = [tokenize(c.content) for c in self._chunks]
        self._bm25 = BM25Okapi(corpus) if corpus else None
        logger.info(f"Knowledge base loaded: {len(self._chunks)} chunks from {self.directory}")
        return len(self._chunks)

    async def search(self, query: str, limit: int = 5) -> List[KnowledgeChunk]:
        if self._bm25 is None:
            return []

        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        scores = self._bm25.get_scores(query_tokens)
        ranked = sorted(zip(self._chunks, scores), key=lambda pair: pair[1], reverse=True)

        results = []
        for chunk, score in ranked[:limit]:
            if score > 0:
                results.append(KnowledgeChunk(chunk.content, chunk.source, chunk.chunk_index, float(score)))
        return results
