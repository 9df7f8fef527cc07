from typing import List

SENTENCE_TERMINALS = ".!?"
CLAUSE_SEPARATORS = ",;:"

# A terminal only closes a chunk once the buffer is longer than this,
# so "e.g." or "Dr." do not produce tiny fragments.
MIN_CHUNK_CHARS = 10

# A lone chunk longer than this is re-split on clause separators so the
# first audio starts sooner.
MAX_SINGLE_CHUNK_CHARS = 100


def segment(text: str) -> List[str]:
    """
    Split sanitized text into ordered, non-empty speakable chunks.

    Args:
        text: Output of `vox.text.sanitizer.clean`

    Returns:
        Chunks in original order. Empty input gives an empty list.
    """
    chunks: List[str] = []
    current = ""
    for char in text:
        current += char
        if char in SENTENCE_TERMINALS and len(current) > MIN_CHUNK_CHARS:
            trimmed = current.strip()
            if trimmed:
                chunks.append(trimmed)
            current = ""

    trimmed = current.strip()
    if trimmed:
        chunks.append(trimmed)

    if len(chunks) == 1 and len(chunks[0]) > MAX_SINGLE_CHUNK_CHARS:
        parts = _split_clauses(chunks[0])
        if len(parts) > 1:
            return parts

    return chunks


def _split_clauses(sentence: str) -> List[str]:
    parts: List[str] = []
    current = ""
    for char in sentence:
        if char in CLAUSE_SEPARATORS:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return [p.strip() for p in parts if p.strip()]


def count_words(text: str) -> int:
    return len(text.split())
