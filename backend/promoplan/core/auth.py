from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_current_user(request: Request) -> CurrentUser:
    """Identity forwarded by the auth gateway in ``X-User-*`` headers."""
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    return CurrentUser(
        id=user_id,
        email=request.headers.get("X-User-Email", "").strip(),
        role=request.headers.get("X-User-Role", "user").strip() or "user",
    )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
