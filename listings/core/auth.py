from dataclasses import dataclass
from enum import Enum


class PrincipalType(str, Enum):
    MAINTENANCE = "maintenance"


MAINTENANCE_SCOPES = frozenset({"pipeline:run", "pipeline:reap", "review:read", "sources:read"})


@dataclass(slots=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    scopes: set[str]

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
