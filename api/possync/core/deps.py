from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from possync.core.security import decode_token

_bearer = HTTPBearer(auto_error=False)


def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    claims = decode_token(credentials.credentials)
    if not claims or claims.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return claims


def require_admin(claims: dict = Depends(get_token_claims)) -> dict:
    """Sync triggers and connection management are operator-only."""
    if claims.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return claims


def check_tenant_access(tenant_id, claims: dict) -> None:
    """Admins see every tenant; other tokens only the tenant they were issued for."""
    if claims.get("role") == "admin":
        return
    if str(claims.get("tenant_id")) != str(tenant_id):
        raise HTTPException(status_code=403, detail="Not allowed for this tenant")
