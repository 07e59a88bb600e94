import re
import secrets
import uuid
import string

SLUG_LENGTH = 7
SLUG_ALPHABET = string.ascii_letters + string.digits
SLUG_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


def generate_slug() -> str:
    """Random, case-sensitive slug such as ``MMXdXcr``; hard to guess."""
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))


def is_valid_slug(slug: str) -> bool:
    """Custom slugs may use letters, digits and hyphens only."""
    return bool(slug) and len(slug) <= 100 and bool(SLUG_PATTERN.match(slug))


def new_id() -> str:
    return str(uuid.uuid4())
