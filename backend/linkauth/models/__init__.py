"""Domain models for linkauth.

All models are exported from this module for convenient imports:
    from linkauth.models import User, MagicLink, Token

Models are plain frozen dataclasses built from gateway rows:
- user.py: User
- magic_link.py: MagicLink (single-use login link)
- token.py: Token (typed, revocable)
"""

from linkauth.models.magic_link import MagicLink
from linkauth.models.token import Token
from linkauth.models.user import User

__all__ = [
    "MagicLink",
    "Token",
    "User",
]
