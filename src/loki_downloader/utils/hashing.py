import hashlib
from typing import Sequence


def stable_hash(text: str) -> str:
    """Generate a stable hash from text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def fingerprint(inputs: Sequence[str], delimiter: str = "-") -> str:
    """
    Key identifying a logical run.

    Inputs are joined in order, so reordering them yields a different key.
    """
    return stable_hash(delimiter.join(str(value) for value in inputs))
