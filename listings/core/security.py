import hashlib
import hmac

from fastapi import Depends, Header, HTTPException, status

from listings.core.auth import MAINTENANCE_SCOPES, Principal, PrincipalType
from listings.core.config import Settings, get_settings


async def get_maintenance_principal(
    settings: Settings = Depends(get_settings),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> Principal:
    if not settings.maintenance_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="maintenance api key is not configured",
        )
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"maintenance auth requires {settings.api_key_header}",
        )

    expected_hash = _digest(settings.maintenance_api_key)
    if not hmac.compare_digest(expected_hash, _digest(x_api_key)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid maintenance credentials")

    return Principal(
        principal_type=PrincipalType.MAINTENANCE,
        subject="maintenance",
        scopes=set(MAINTENANCE_SCOPES),
    )


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
