from fastapi import APIRouter, Depends, HTTPException, Response, status

from gateway.api.deps import get_renderer, require_admin
from gateway.services.renderer import TemplateError, TemplateRenderer

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


@router.post("/admin/reload-template", status_code=status.HTTP_204_NO_CONTENT)
def reload_template(renderer: TemplateRenderer = Depends(get_renderer)) -> Response:
    try:
        renderer.reload()
    except TemplateError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
