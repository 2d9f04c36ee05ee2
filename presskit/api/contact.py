"""
Inquiry inbox routes for EPK owners.

Static paths (/inquiries, /stats) are declared before the /{inquiry_id}
routes so they are never captured as ids.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from presskit.core.auth import AuthContext, get_auth_context
from presskit.core.responses import paginated, success
from presskit.dependencies import Services, get_services
from presskit.models.contact import InquiryStatusInput, InquiryType, RespondRequest, StatusUpdate

router = APIRouter(prefix="/contact", tags=["contact"])


@router.get("/inquiries")
def list_inquiries(
    page: int = 1,
    limit: int = 10,
    status: Optional[InquiryStatusInput] = None,
    kind: Optional[InquiryType] = Query(None, alias="type"),
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    return paginated(services.contact.list_received(auth.user, page, limit, status, kind))


@router.get("/stats")
def inquiry_stats(auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.contact.stats(auth.user))


@router.patch("/{inquiry_id}/status")
def update_status(
    inquiry_id: str,
    body: StatusUpdate,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    inquiry = services.contact.update_status(auth.user, inquiry_id, body.status, body.note)
    return success(inquiry, "Inquiry status updated")


@router.post("/{inquiry_id}/respond")
def respond(
    inquiry_id: str,
    body: RespondRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    return success(services.contact.respond(auth.user, inquiry_id, body.message), "Response sent successfully")
