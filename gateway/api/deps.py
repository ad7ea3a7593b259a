import ipaddress
from ipaddress import IPv4Address

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import ValidationError as PydanticValidationError

from gateway.config import Settings
from gateway.schemas.peer import PeerCreateRequest
from gateway.services import security
from gateway.services.errors import ForbiddenAddressError, ValidationError
from gateway.services.lifecycle import PeerLifecycle, classify_client_address
from gateway.services.renderer import TemplateRenderer

_basic = HTTPBasic(realm="restricted")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lifecycle(request: Request) -> PeerLifecycle:
    return request.app.state.lifecycle


def get_renderer(request: Request) -> TemplateRenderer:
    return request.app.state.renderer


def _parse_ip(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def _is_loopback(host: str) -> bool:
    addr = _parse_ip(host)
    return addr is not None and addr.is_loopback


def _forwarded_client(forwarded_for: str) -> str | None:
    hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
    for index in range(len(hops) - 1, -1, -1):
        addr = _parse_ip(hops[index])
        if addr is None:
            return None
        if index == 0 or not addr.is_loopback:
            return hops[index]
    return None


def resolve_client_host(remote_host: str | None, forwarded_for: str | None, real_ip: str | None, trust_loopback_proxy: bool) -> str | None:
    """Pick the caller address, honouring proxy headers only from a loopback peer.

    X-Forwarded-For is walked from the right, skipping loopback hops; an
    unparsable hop discards the header and X-Real-IP is tried instead.
    """
    if not trust_loopback_proxy or not remote_host or not _is_loopback(remote_host):
        return remote_host
    if forwarded_for:
        client = _forwarded_client(forwarded_for)
        if client is not None:
            return client
    if real_ip and _parse_ip(real_ip.strip()) is not None:
        return real_ip.strip()
    return remote_host


def get_client_host(request: Request, settings: Settings = Depends(get_settings)) -> str | None:
    remote = request.client.host if request.client else None
    return resolve_client_host(
        remote,
        request.headers.get("x-forwarded-for"),
        request.headers.get("x-real-ip"),
        settings.trust_proxy_loopback_only,
    )


def require_ipv4_client(client_host: str | None = Depends(get_client_host)) -> IPv4Address:
    """Refuse callers without a usable IPv4 address before the body is read."""
    try:
        return classify_client_address(client_host)
    except ForbiddenAddressError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


async def get_create_request(request: Request) -> PeerCreateRequest:
    body = await request.body()
    if not body.strip():
        return PeerCreateRequest()
    try:
        return PeerCreateRequest.model_validate_json(body)
    except PydanticValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid request body")


def require_jwt(authorization: str | None = Header(default=None), settings: Settings = Depends(get_settings)) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing access token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = authorization.split(" ", 1)[1]
    payload = security.decode_token(token, settings.jwt_secret, settings.jwt_algorithm)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def require_admin(credentials: HTTPBasicCredentials = Depends(_basic), settings: Settings = Depends(get_settings)) -> None:
    if not security.verify_basic_credentials(
        credentials.username,
        credentials.password,
        settings.basic_auth_username,
        settings.basic_auth_password,
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="unauthorized",
            headers={"WWW-Authenticate": 'Basic realm="restricted"'},
        )
