import re

_HORIZONTAL_WS = re.compile(r"[ \t\f\v]+")
_TRAILING_WS = re.compile(r"[ \t]+\n")
_BLANK_RUNS = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """Normalize extracted document text.

    Unifies line endings, drops NUL bytes left by some PDF producers,
    collapses horizontal whitespace and limits blank runs to one empty line.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _TRAILING_WS.sub("\n", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def preview(text: str | None, max_chars: int) -> str | None:
    """First ``max_chars`` characters of ``text``, or None when empty."""
    if not text:
        return None
    return text[:max_chars]
