"""
Goods Receiving Security Utilities

Access tokens identify the person stamped onto a GRN (received_by,
quality_inspector, approved_by). Auth0 RS256 tokens are verified against the
tenant JWKS; dev and test environments may also use locally signed HS256
tokens.
"""

import time
from datetime import datetime, timedelta

import httpx
import structlog
from jose import JWTError, jwt

from core.config import get_settings

logger = structlog.get_logger()

LOCAL_ENVS = frozenset({"", "local", "dev", "development", "test"})

_JWKS_CACHE: dict[str, tuple[float, dict]] = {}


def create_access_token(claims: dict, expires_delta: timedelta | None = None) -> str:
    """Sign a local token. `claims` should carry at least `sub`."""
    runtime = get_settings()
    payload = {**claims, "exp": datetime.utcnow() + (expires_delta or timedelta(hours=24))}
    return jwt.encode(payload, runtime.jwt_secret, algorithm=runtime.jwt_algorithm)


def _is_local_env() -> bool:
    return get_settings().app_env.strip().lower() in LOCAL_ENVS


def _resolve_auth0_issuer() -> str:
    runtime = get_settings()
    if runtime.auth0_issuer:
        return runtime.auth0_issuer.rstrip("/")
    domain = runtime.auth0_domain.strip()
    if not domain:
        return ""
    if not domain.startswith(("http://", "https://")):
        domain = f"https://{domain}"
    return domain.rstrip("/")


def _get_jwks(issuer: str) -> dict | None:
    """Fetch the tenant key set, cached for `auth0_jwks_cache_ttl_seconds` (min 60s)."""
    now = time.time()
    cached = _JWKS_CACHE.get(issuer)
    if cached and cached[0] > now:
        return cached[1]

    try:
        with httpx.Client(timeout=5.0) as client:
            response = client.get(f"{issuer}/.well-known/jwks.json")
            response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("auth.jwks_unavailable", issuer=issuer, error=str(exc))
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("keys"), list):
        logger.warning("auth.jwks_malformed", issuer=issuer)
        return None
    ttl = max(60, int(get_settings().auth0_jwks_cache_ttl_seconds))
    _JWKS_CACHE[issuer] = (now + ttl, payload)
    return payload


def _decode_auth0_access_token(token: str) -> dict | None:
    runtime = get_settings()
    issuer = _resolve_auth0_issuer()
    if not issuer or not runtime.auth0_audience:
        return None

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except JWTError:
        return None
    if not kid:
        return None

    jwks = _get_jwks(issuer)
    key = next((k for k in (jwks or {}).get("keys", []) if k.get("kid") == kid), None)
    if key is None:
        return None

    try:
        return jwt.decode(token, key, algorithms=["RS256"], audience=runtime.auth0_audience, issuer=issuer)
    except JWTError as exc:
        logger.info("auth.token_rejected", issuer=issuer, reason=str(exc))
        return None


def decode_access_token(token: str) -> dict | None:
    """Claims of a valid token, or None. Auth0 first, then the local secret."""
    runtime = get_settings()

    claims = _decode_auth0_access_token(token)
    if claims is not None:
        return claims

    # With a tenant configured, production accepts nothing else.
    if runtime.auth0_domain and runtime.auth0_audience and not _is_local_env():
        return None

    try:
        return jwt.decode(token, runtime.jwt_secret, algorithms=[runtime.jwt_algorithm])
    except JWTError:
        return None
