from typing import Optional

from fastapi import Depends, Header, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.core.rate_limit import RateLimiter, get_rate_limiter
from app.db.session import SessionLocal

# --- Database Session Dependency ---
def get_db():
    """
    Dependency function that creates and yields a new database session
    for each request.

    It ensures that the session is always closed after the request is
    finished, even if an error occurs.
    """
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# --- Caller Identity Dependency ---
def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """
    Returns the id of the calling user. Authentication happens upstream;
    the gateway forwards the authenticated user in the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


# --- Rate Limit Dependency ---
def rate_limited(scope: str):
    """
    Build a dependency that admits the calling user under `scope`'s request
    limit and returns their id. Over the limit it answers 429 with the
    seconds to wait in Retry-After.
    """
    def dependency(
        response: Response,
        user_id: str = Depends(get_current_user_id),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> str:
        result = limiter.check(scope, user_id)
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
        }
        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={**headers, "Retry-After": str(result.retry_after)},
            )
        response.headers.update(headers)
        return user_id

    return dependency
