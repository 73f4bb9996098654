import re

def normalize_text(text: str) -> str:
    """
    Clean extracted text before it is stored and chunked.
    """
    if not text:
        return ""

    # Remove null bytes (Postgres TEXT rejects them)
    text = text.replace("\x00", "")

    # Normalize line endings, then squeeze horizontal whitespace
    # (keeps newlines intact so paragraph boundaries survive)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r'[^\S\n]+', ' ', text)

    # Collapse explicit multiple newlines to max 2 (paragraph separation)
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()


def collapse_whitespace(text: str) -> str:
    """Reduce every whitespace run to a single space."""
    return " ".join(text.split())
