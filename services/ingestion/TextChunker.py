"""Fixed-size sliding-window text chunker."""

CHUNK_SIZE = 2000    # characters per window
CHUNK_OVERLAP = 200  # characters shared by consecutive windows


def split_text(text: str, window_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Split text into overlapping windows.

    The window starts at offset 0 and advances by ``window_size - overlap``
    until the start reaches the end of the text. The last window may be
    shorter than ``window_size``. For a text of length L the number of
    windows is ``ceil(L / (window_size - overlap))``.

    Args:
        text (str): Normalised document text.
        window_size (int): Characters per window.
        overlap (int): Characters shared by consecutive windows.

    Returns:
        list[str]: Ordered windows; empty for empty input.

    Raises:
        ValueError: If window_size <= 0, overlap < 0 or overlap >= window_size.
    """
    if window_size <= 0:
        raise ValueError(f"window_size must be positive, got {window_size}.")
    if overlap < 0 or overlap >= window_size:
        raise ValueError(f"overlap must be in [0, window_size), got {overlap} for window_size {window_size}.")
    if not text:
        return []

    step = window_size - overlap
    chunks: list[str] = []
    for start in range(0, len(text), step):
        chunk = text[start:start + window_size]
        if chunk:
            chunks.append(chunk)
    return chunks


def merge_chunks(chunks: list[str], overlap: int = CHUNK_OVERLAP) -> str:
    """Rebuild the original text from windows produced by split_text()."""
    if not chunks:
        return ""
    return chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])
