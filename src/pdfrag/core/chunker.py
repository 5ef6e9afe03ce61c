"""Paragraph-first text chunking with a sentence-level fallback."""

import re
from typing import List

# Simple token approximation: ~4 chars per token
CHARS_PER_TOKEN = 4

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
# A run ending in terminators, or a trailing run with none.
SENTENCE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+")


def split_sentences(paragraph: str) -> List[str]:
    """Split a paragraph into sentences ending in '.', '!' or '?'.

    Text after the last terminator is kept as a final sentence, and a
    paragraph without any terminator comes back as a single sentence.
    """
    sentences = [s.strip() for s in SENTENCE.findall(paragraph)]
    sentences = [s for s in sentences if s]
    return sentences or [paragraph.strip()]


def chunk_text(text: str, max_chunk_size: int = 800) -> List[str]:
    """
    Split text into chunks of at most ``max_chunk_size * 4`` characters.

    Paragraphs (separated by blank lines) are packed together first. A
    paragraph too large to fit on its own is broken into sentences, which
    are packed the same way. A single sentence larger than the limit is
    emitted as its own oversized chunk rather than truncated.

    Args:
        text: Extracted document text
        max_chunk_size: Target chunk size in tokens

    Returns:
        Ordered list of chunk strings
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")

    limit = max_chunk_size * CHARS_PER_TOKEN
    chunks: List[str] = []
    current = ""

    def fits(piece: str, separator: str) -> bool:
        if not current:
            return len(piece) <= limit
        return len(current) + len(separator) + len(piece) <= limit

    for raw_paragraph in PARAGRAPH_BREAK.split(text):
        paragraph = raw_paragraph.strip()
        if not paragraph:
            continue

        if fits(paragraph, "\n\n"):
            current = f"{current}\n\n{paragraph}" if current else paragraph
            continue

        if current:
            chunks.append(current)
            current = ""

        if len(paragraph) <= limit:
            current = paragraph
            continue

        # Paragraph too big, split by sentence
        for sentence in split_sentences(paragraph):
            if fits(sentence, " "):
                current = f"{current} {sentence}" if current else sentence
            else:
                if current:
                    chunks.append(current)
                current = sentence

    if current:
        chunks.append(current)

    return chunks
