"""Binomial key extraction from free-text host annotations."""


def is_blank(annotation: str | None) -> bool:
    """True for missing or whitespace-only annotations."""
    return annotation is None or not annotation.strip()


def extract_binomial_key(annotation: str) -> str:
    """Reduce a host annotation to its first two whitespace tokens.

    "Homo sapiens; female; 45"  -> "Homo sapiens;"
    "  Aedes   aegypti strain X" -> "Aedes aegypti"
    "Bat"                        -> "Bat"

    No attempt is made to clean punctuation or validate the result; keys that
    are not taxon names simply fail resolution later.

    Args:
        annotation: Host annotation with at least one non-whitespace character

    Returns:
        At most two tokens joined by a single space

    Raises:
        ValueError: If the annotation is blank
    """
    if is_blank(annotation):
        raise ValueError("Cannot extract a key from a blank host annotation")
    return " ".join(annotation.split()[:2])
