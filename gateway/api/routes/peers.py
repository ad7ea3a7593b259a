import logging
from ipaddress import IPv4Address

from fastapi import APIRouter, Depends, HTTPException, Response, status

from gateway.api.deps import get_create_request, get_lifecycle, get_renderer, require_admin, require_ipv4_client, require_jwt
from gateway.schemas.peer import PeerCreateRequest
from gateway.services.errors import DeviceError, ForbiddenAddressError, InternalError, NotFoundError, ValidationError
from gateway.services.lifecycle import PeerLifecycle
from gateway.services.renderer import TemplateError, TemplateRenderer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/peer", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_jwt)])
def create_peer(
    client_address: IPv4Address = Depends(require_ipv4_client),
    payload: PeerCreateRequest = Depends(get_create_request),
    lifecycle: PeerLifecycle = Depends(get_lifecycle),
    renderer: TemplateRenderer = Depends(get_renderer),
) -> Response:
    try:
        provisioned = lifecycle.create_peer(str(client_address), payload.note)
    except ForbiddenAddressError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DeviceError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="add peer")
    except InternalError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    try:
        rendered = renderer.render(provisioned.template_context())
    except TemplateError as e:
        logger.error("render template for peer %s: %s", provisioned.peer_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="template render failed")

    return Response(content=rendered, status_code=status.HTTP_201_CREATED, media_type="application/json")


@router.delete("/peer/{peer_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
def delete_peer(peer_id: str, lifecycle: PeerLifecycle = Depends(get_lifecycle)) -> Response:
    try:
        lifecycle.delete_peer(peer_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="peer not found")
    except DeviceError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="remove peer")
    except InternalError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
