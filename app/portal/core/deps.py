from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError

from app.portal.core.context import RequestContext, build_request_context
from app.portal.core.error_catalog import AppError, ErrorCatalog
from app.portal.core.security import TokenData, decode_token, oauth2_scheme
from app.portal.db.session import get_db
from app.portal.repos.users import UserRepository
from app.portal.services.permission_cache import PermissionCache, get_permission_cache
from app.portal.services.permissions import PermissionResolver


def get_current_token_data(token: str | None = Depends(oauth2_scheme)) -> TokenData:
    if not token:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def require_request_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    context = build_request_context(
        user_id=token_data.sub,
        email=token_data.email,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.context = context
    request.state.user_id = token_data.sub
    return context


def get_current_user(context: RequestContext = Depends(require_request_context), db=Depends(get_db)):
    user = UserRepository(db).get_by_id(context.user_id)
    if user is None:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    return user


def require_active_user(user=Depends(get_current_user)):
    if not user.is_active:
        raise AppError(ErrorCatalog.USER_INACTIVE)
    return user


def get_permission_resolver(
    db=Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
) -> PermissionResolver:
    return PermissionResolver(db, cache=cache)


def require_permission(permission_id: str):
    def dependency(
        user=Depends(require_active_user),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ):
        decision = resolver.evaluate_permission(user.id, permission_id)
        if not decision.allowed:
            raise AppError(ErrorCatalog.PERMISSION_DENIED, details={"permission": decision.key})
        return user

    return dependency


__all__ = [
    "get_current_token_data",
    "get_current_user",
    "require_active_user",
    "require_request_context",
    "get_permission_resolver",
    "require_permission",
]
