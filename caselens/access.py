import uuid
from typing import Iterable, Mapping, Optional, Protocol, Set


class ProjectAccessPolicy(Protocol):
    """Decides whether a requester may read or modify a project's data."""

    async def has_project_access(self, user_id: Optional[str], project_id: uuid.UUID) -> bool:
        ...


class OpenAccessPolicy:
    """Allows everything. For deployments where the host app already authorizes requests."""

    async def has_project_access(self, user_id: Optional[str], project_id: uuid.UUID) -> bool:
        return True


class StaticAccessPolicy:
    """Membership from a fixed user → projects mapping."""

    def __init__(self, memberships: Mapping[str, Iterable[uuid.UUID]]):
        self._memberships = {user: set(projects) for user, projects in memberships.items()}

    async def has_project_access(self, user_id: Optional[str], project_id: uuid.UUID) -> bool:
        if not user_id:
            return False
        projects: Set[uuid.UUID] = self._memberships.get(user_id, set())
        return project_id in projects
