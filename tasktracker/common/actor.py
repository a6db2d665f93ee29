from enum import Enum
from fastapi import Header
from pydantic import BaseModel


class ActorRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Actor(BaseModel):
    id: str
    role: ActorRole = ActorRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or owner_id == self.id


def get_current_actor(
    x_user_id: str = Header(...),
    x_user_role: ActorRole = Header(ActorRole.USER),
) -> Actor:
    # Identity is established upstream; the headers are trusted as-is.
    return Actor(id=x_user_id, role=x_user_role)
