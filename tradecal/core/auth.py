import logging
from typing import Any, Dict

import requests
from cachetools import TTLCache
from fastapi import Depends, Header, HTTPException, status
from jose import jwt, JWTError

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

# cache JWKS for 1 hour
_jwks_cache: TTLCache = TTLCache(maxsize=1, ttl=3600)

ASYMMETRIC_ALGS = {"RS256", "ES256"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _get_jwks(supabase_url: str) -> Dict[str, Any]:
    if "jwks" in _jwks_cache:
        return _jwks_cache["jwks"]
    url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
    r = requests.get(url, timeout=5)
    r.raise_for_status()
    data = r.json()
    _jwks_cache["jwks"] = data
    return data


def _user_id_from_claims(claims: Dict[str, Any]) -> str:
    sub = claims.get("sub")
    if not sub:
        raise _unauthorized("no_sub_in_token")
    return sub


def verify_supabase_token(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Validates the Supabase JWT and returns the user's UUID (claims['sub']).

    Asymmetric tokens (kid + RS256/ES256) are checked against the project's
    JWKS; anything else falls back to the HS256 SUPABASE_JWT_SECRET.
    Issuer and expiry are verified on both paths.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized("missing_bearer_token")

    token = authorization.split(" ", 1)[1].strip()

    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        raise _unauthorized("invalid_token_format")

    alg = header.get("alg")
    kid = header.get("kid")
    expected_iss = f"{settings.SUPABASE_URL}/auth/v1"
    decode_opts = {"verify_aud": False}

    if kid and alg in ASYMMETRIC_ALGS and settings.SUPABASE_URL:
        try:
            jwks = _get_jwks(settings.SUPABASE_URL)
        except requests.RequestException as e:
            logger.error("JWKS fetch failed: %s", e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="jwks_unavailable",
            )
        matched_key = next(
            (k for k in jwks.get("keys") or [] if k.get("kid") == kid), None
        )
        if matched_key:
            try:
                claims = jwt.decode(
                    token,
                    matched_key,
                    algorithms=[alg],
                    options=decode_opts,
                    issuer=expected_iss,
                )
            except JWTError as e:
                logger.info("JWKS token rejected: %s", e)
                raise _unauthorized("invalid_token")
            return _user_id_from_claims(claims)

    if not settings.SUPABASE_JWT_SECRET:
        # No matching JWKS key and no legacy secret to fall back on
        raise _unauthorized("invalid_token_kid")

    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options=decode_opts,
            issuer=expected_iss,
        )
    except JWTError as e:
        logger.info("HS256 token rejected: %s", e)
        raise _unauthorized("invalid_token")

    return _user_id_from_claims(claims)
