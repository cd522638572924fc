from typing import List

# Titan v2 accepts 8192 tokens (~32k chars at ~4 chars/token).
# 4000 chars per chunk stays well below that for any embedding model we use.
MAX_EMBEDDING_CHUNK_CHAR_LENGTH = 4000

# chunk_text("Intro line\n\nSecond paragraph...", 4000)
#   -> ["Intro line\n\nSecond paragraph..."]
# chunk_text("x" * 50, 10)
#   -> ["xxxxxxxxxx", "xxxxxxxxxx", "xxxxxxxxxx", "xxxxxxxxxx", "xxxxxxxxxx"]


def split_long_word(word: str, max_char_length: int) -> List[str]:
    """Cut a word with no spaces into max_char_length slices; the last one holds the rest."""
    parts = []
    if not word or max_char_length <= 0:
        return parts

    rest = word
    while len(rest) > max_char_length:
        parts.append(rest[:max_char_length])
        rest = rest[max_char_length:]
    if rest:
        parts.append(rest)
    return parts


def split_paragraph_by_words(paragraph: str, max_char_length: int) -> List[str]:
    """
    Greedily pack the words of an over-long paragraph into chunks joined by
    single spaces. Words longer than max_char_length are hard split.
    """
    chunks = []
    if not paragraph or max_char_length <= 0:
        return chunks

    current = ""
    for word in paragraph.split(" "):
        if not word:
            continue

        if len(word) > max_char_length:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(split_long_word(word, max_char_length))
            continue

        sep = " " if current else ""
        if len(current) + len(sep) + len(word) <= max_char_length:
            current += sep + word
        else:
            if current:
                chunks.append(current)
            current = word

    if current:
        chunks.append(current)
    return chunks


def _start_chunk(paragraph: str, max_char_length: int, out: List[str]) -> str:
    # returns the new pending chunk; over-long paragraphs go straight to out
    if len(paragraph) <= max_char_length:
        return paragraph
    out.extend(split_paragraph_by_words(paragraph, max_char_length))
    return ""


def chunk_text(text: str, max_char_length: int = MAX_EMBEDDING_CHUNK_CHAR_LENGTH) -> List[str]:
    """
    Split text into chunks of at most max_char_length characters.

    Lines are merged into one chunk while they fit, keeping the newline between
    them. A blank line is kept as one extra newline inside the pending chunk
    when there is room, otherwise it closes the chunk. Lines that do not fit on
    their own are packed word by word, and words that do not fit are cut.

    Never raises: empty text or a non-positive limit gives [].
    """
    chunks = []
    if not text or max_char_length <= 0:
        return chunks

    current = ""
    for paragraph in text.split("\n"):
        if not paragraph.strip():
            if current:
                if len(current) + 1 <= max_char_length:
                    current += "\n"
                else:
                    chunks.append(current)
                    current = ""
            continue

        if not current:
            current = _start_chunk(paragraph, max_char_length, chunks)
        elif len(current) + 1 + len(paragraph) <= max_char_length:
            current += "\n" + paragraph
        else:
            chunks.append(current)
            current = _start_chunk(paragraph, max_char_length, chunks)

    if current:
        chunks.append(current)

    return [c for c in chunks if c.strip()]
