"""
Paste identifier generation.
"""
import secrets
import string

ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
MIN_ID_LENGTH = 10
DEFAULT_ID_LENGTH = 10


def generate(length: int = DEFAULT_ID_LENGTH) -> str:
    """
    Generate a random alphanumeric paste id.

    Every symbol is drawn uniformly from the 62-character alphabet using the
    operating system's CSPRNG, so ids cannot be enumerated or predicted.

    Args:
        length: Number of characters (at least 10)

    Returns:
        The generated id
    """
    if length < MIN_ID_LENGTH:
        raise ValueError(f"id length must be >= {MIN_ID_LENGTH}, got {length}")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))
