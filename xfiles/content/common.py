"""Content addressing shared by multiple components."""

import hashlib


def digest(content: bytes) -> str:
    """Return the hex digest that identifies the given content."""
    return hashlib.sha256(content).hexdigest()


def verify(content: bytes, expected: str) -> bool:
    """Check if the content matches the given digest."""
    return digest(content) == expected
