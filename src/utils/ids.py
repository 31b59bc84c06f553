"""Random identifiers."""

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits


def make_id(length: int = 10) -> str:
    """
    Generate a random alphanumeric id.

    Used to tag Stripe subscription metadata so the frontend can poll
    for the matching webhook.
    """
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))
