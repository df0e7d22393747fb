"""FastAPI dependencies resolving the calling user from a bearer token."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth_service import AuthError, TokenExpiredError, TokenVerifier

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(reason: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"status": "error", "failure_reason": reason},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_verifier(request: Request) -> TokenVerifier:
    verifier = getattr(request.app.state, "token_verifier", None)
    if verifier is None:  # pragma: no cover - wiring error
        raise RuntimeError("TokenVerifier is not configured")
    return verifier


def require_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    """Every generation and lyrics route is scoped to this user id."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("missing_token")
    try:
        return verifier.user_id_for(credentials.credentials)
    except TokenExpiredError as exc:
        raise _unauthorized("token_expired") from exc
    except AuthError as exc:
        raise _unauthorized("invalid_token") from exc


__all__ = ["bearer_scheme", "get_token_verifier", "require_user_id"]
