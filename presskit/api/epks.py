"""
EPK routes.

Owner routes require a bearer token; the slug read, interaction tracking
and contact submission are public.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from presskit.core.auth import AuthContext, get_auth_context
from presskit.core.responses import created, paginated, success
from presskit.dependencies import Services, get_services
from presskit.features.crud import RESERVED_PARAMS
from presskit.features.media.service import MAX_FILE_SIZE, IncomingFile
from presskit.models.contact import ContactSubmission
from presskit.models.epk import EPKCreate, EPKUpdate, InteractionRequest, MediaDeleteRequest, MediaKind

router = APIRouter(prefix="/epks", tags=["epks"])


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("")
def create_epk(body: EPKCreate, auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return created(services.epks.create_for(auth.user, body), "EPK created successfully")


@router.get("")
def list_epks(
    request: Request,
    page: int = 1,
    limit: int = 10,
    sort: Optional[str] = None,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    filters = {k: v for k, v in request.query_params.items() if k not in RESERVED_PARAMS}
    return paginated(services.epks.list_for(auth.user, page, limit, sort, filters))


@router.get("/slug/{slug}")
def get_epk_by_slug(slug: str, request: Request, services: Services = Depends(get_services)):
    epk = services.epks.get_by_slug(
        slug,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )
    return success(epk)


@router.get("/{epk_id}")
def get_epk(epk_id: str, auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.epks.get_for(auth.user, epk_id))


@router.put("/{epk_id}")
def update_epk(
    epk_id: str,
    body: EPKUpdate,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    return success(services.epks.update_for(auth.user, epk_id, body), "EPK updated successfully")


@router.delete("/{epk_id}")
def delete_epk(epk_id: str, auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    services.epks.delete_for(auth.user, epk_id)
    return success(message="EPK deleted successfully")


@router.post("/{epk_id}/media")
async def upload_media(
    epk_id: str,
    kind: MediaKind = Query(..., alias="type"),
    files: Optional[List[UploadFile]] = File(None),
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    incoming = []
    for upload in files or []:
        # One byte past the ceiling is enough to reject the file.
        content = await upload.read(MAX_FILE_SIZE + 1)
        incoming.append(IncomingFile(upload.filename, upload.content_type, content, len(content)))
    epk = await run_in_threadpool(services.epks.add_media, auth.user, epk_id, kind, incoming)
    return success(epk, "Files uploaded successfully")


@router.delete("/{epk_id}/media")
def delete_media(
    epk_id: str,
    body: MediaDeleteRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    epk = services.epks.remove_media(auth.user, epk_id, body.public_id, body.type)
    return success(epk, "File deleted successfully")


@router.get("/{epk_id}/analytics")
def get_epk_analytics(epk_id: str, auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.epks.analytics_for(auth.user, epk_id))


@router.post("/{epk_id}/interactions")
def track_interaction(epk_id: str, body: InteractionRequest, services: Services = Depends(get_services)):
    services.epks.track_interaction(epk_id, body.type)
    return success(message="Interaction tracked")


@router.post("/{epk_id}/contact")
def submit_contact(epk_id: str, body: ContactSubmission, request: Request, services: Services = Depends(get_services)):
    metadata = {
        "ipAddress": client_ip(request),
        "userAgent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
        "source": "epk",
    }
    inquiry = services.contact.submit(epk_id, body, metadata)
    return created(inquiry, "Your message has been sent successfully")
