"""Role and backend rosters, fixed at process start, plus display labels."""

from config.config_loader import RoleConfig
from arena.models import USER, AgentIdentity
from arena.providers.base import StreamingBackend


class Roster:
    """Ordered roles (N) and ordered backends (M)."""

    def __init__(self, roles: list[RoleConfig], backends: list[StreamingBackend]) -> None:
        if not roles:
            raise ValueError("Role roster is empty")
        if not backends:
            raise ValueError("Backend roster is empty")
        self.roles = list(roles)
        self.backends = list(backends)
        self._roles_by_id = {r.id: r for r in self.roles}
        self._backends_by_id = {b.backend_id(): b for b in self.backends}

    def role(self, role_id: str) -> RoleConfig | None:
        return self._roles_by_id.get(role_id)

    def backend(self, backend_id: str) -> StreamingBackend | None:
        return self._backends_by_id.get(backend_id)

    def role_name(self, role_id: str) -> str:
        role = self.role(role_id)
        return role.name if role else role_id

    def backend_label(self, backend_id: str) -> str:
        backend = self.backend(backend_id)
        if backend:
            return backend.label()
        return backend_id.split("/")[-1]

    def label(self, speaker: str) -> str:
        """Human label for a wire speaker string ("user" or "role:backend")."""
        if speaker == USER:
            return "User"
        try:
            identity = AgentIdentity.parse(speaker)
        except ValueError:
            return speaker.split("/")[-1]
        return f"{self.role_name(identity.role)} ({self.backend_label(identity.backend)})"

    def display_label(self, identity: AgentIdentity) -> str:
        role = self.role(identity.role)
        icon = f"{role.icon} " if role and role.icon else ""
        return f"{icon}{self.role_name(identity.role)} ({self.backend_label(identity.backend)})"
