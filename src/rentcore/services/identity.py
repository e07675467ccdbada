"""Identity collaborator: answers whether an actor is an administrator.

Ownership is not decided here; it comes from ``Listing.owner_ids``.
"""

from typing import TYPE_CHECKING, Protocol

from rentcore.config import get_settings

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

SYSTEM_ACTOR = "system"


class IdentityService(Protocol):
    def is_admin(self, actor_id: str) -> bool: ...


class StaticIdentityService:
    """Admins listed in configuration (RENTCORE_ADMIN_IDS)."""

    def __init__(self, admin_ids: frozenset[str] | set[str] | None = None) -> None:
        self._admin_ids = frozenset(admin_ids if admin_ids is not None else get_settings().admin_ids)

    def is_admin(self, actor_id: str) -> bool:
        return actor_id == SYSTEM_ACTOR or actor_id in self._admin_ids


class DynamoDBIdentityService:
    """Admins flagged by ``role = "admin"`` in the users table."""

    TABLE = "users"
    ADMIN_ROLE = "admin"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def is_admin(self, actor_id: str) -> bool:
        if actor_id == SYSTEM_ACTOR:
            return True
        item = self.db.get_item(self.TABLE, {"user_id": actor_id}, consistent_read=False)
        return bool(item) and item.get("role") == self.ADMIN_ROLE
