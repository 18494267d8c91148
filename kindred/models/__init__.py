"""
Kindred — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from kindred.models.user import User
from kindred.models.interest import Interest, InterestKind
from kindred.models.match import Match, Message, UserMatch, canonical_pair

__all__ = [
    "User",
    "Interest",
    "InterestKind",
    "Match",
    "Message",
    "UserMatch",
    "canonical_pair",
]
