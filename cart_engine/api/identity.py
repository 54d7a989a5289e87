# cart_engine/api/identity.py
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from cart_engine.domain.exceptions import CartValidationError
from cart_engine.domain.owner import AccountOwner, CartOwner, GuestOwner
from cart_engine.utils.settings import (
    COOKIE_SECURE,
    GUEST_CART_TTL_SECONDS,
    GUEST_COOKIE_NAME,
    GUEST_HEADER_NAME,
    JWT_ALGORITHM,
    JWT_SECRET_KEY,
)
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

optional_bearer_scheme = HTTPBearer(auto_error=False)


def decode_account_id(token: str) -> Optional[int]:
    """Returns the account id carried in `sub`, or None for anything unusable."""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Ignoring invalid bearer token: {e}")
        return None

    sub = payload.get("sub")
    try:
        account_id = int(sub)
    except (TypeError, ValueError):
        logger.warning("Bearer token payload is missing a numeric 'sub'")
        return None
    return account_id if account_id > 0 else None


def get_optional_account_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme),
) -> Optional[int]:
    if not credentials:
        return None
    return decode_account_id(credentials.credentials)


def read_guest_token(request: Request) -> Optional[str]:
    token = request.headers.get(GUEST_HEADER_NAME) or request.cookies.get(GUEST_COOKIE_NAME)
    if token:
        token = token.strip()
    return token or None


def set_guest_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=GUEST_COOKIE_NAME,
        value=token,
        max_age=GUEST_CART_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
        path="/",
    )
    response.headers[GUEST_HEADER_NAME] = token


def clear_guest_cookie(response: Response) -> None:
    response.delete_cookie(key=GUEST_COOKIE_NAME, path="/")


def resolve_cart_owner(
    request: Request,
    response: Response,
    account_id: Optional[int] = Depends(get_optional_account_id),
) -> CartOwner:
    """
    Account identity always wins. Otherwise the guest token from the header
    or cookie is used, and a fresh one is minted when the client has none.
    Guest tokens are (re)issued to the client on every response.
    """
    if account_id is not None:
        return AccountOwner(account_id)

    token = read_guest_token(request)
    owner = None
    if token:
        try:
            owner = GuestOwner(token)
        except CartValidationError:
            logger.warning("Discarding malformed guest token")

    if owner is None:
        owner = GuestOwner(str(uuid.uuid4()))
        logger.info("Issued new guest token")

    # error handlers build their own response and re-attach the token from here
    request.state.guest_token = owner.token
    set_guest_cookie(response, owner.token)
    return owner


def require_account(account_id: Optional[int] = Depends(get_optional_account_id)) -> AccountOwner:
    if account_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AccountOwner(account_id)
