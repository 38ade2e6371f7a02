"""
HTTP API for the invoice lifecycle service.

The caller is identified by headers set by the upstream session gateway
(X-User-Id, X-User-Name, X-User-Role, X-Assigned-Projects, X-Vendor-Id).
Domain errors are mapped to HTTP status codes in one exception handler.
"""

import os
import sys
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from invoice_lifecycle import __version__
from invoice_lifecycle.access import normalize_role
from invoice_lifecycle.config import get_config_manager
from invoice_lifecycle.connectors import APIConnector, InMemoryConnector
from invoice_lifecycle.documents import DocumentStore
from invoice_lifecycle.lifecycle import Provenance
from invoice_lifecycle.matching import ThreeWayMatcher
from invoice_lifecycle.models import (
    Actor,
    InvoiceLifecycleError, AuthenticationError, ForbiddenError, NotFoundError,
    ValidationError, ApprovalLockedError, ConcurrentModificationError,
    MatchingDependencyError, PersistenceError
)
from invoice_lifecycle.repository import InMemoryInvoiceRepository, JsonFileInvoiceRepository
from invoice_lifecycle.service import InvoiceService

logger = logging.getLogger(__name__)


DATA_FILE_ENV = 'INVOICE_LIFECYCLE_DATA_FILE'
DOCUMENTS_DIR_ENV = 'INVOICE_LIFECYCLE_DOCUMENTS_DIR'

# Checked in order; the first matching class wins
ERROR_STATUS_CODES = [
    (AuthenticationError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ValidationError, 400),
    (ApprovalLockedError, 409),
    (ConcurrentModificationError, 409),
    (MatchingDependencyError, 502),
    (PersistenceError, 500),
]


_log_handler: Optional[logging.Handler] = None


def configure_logging(level: int = logging.INFO):
    """Send log records to stdout in the service's standard format."""
    global _log_handler
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if _log_handler is None:
        _log_handler = logging.StreamHandler(sys.stdout)
        _log_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        root_logger.addHandler(_log_handler)


def status_code_for(error: InvoiceLifecycleError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


def build_default_service() -> InvoiceService:
    """
    Assemble a service from configuration.

    Uses the configured purchase-order API when one is saved, the JSON file
    repository when $INVOICE_LIFECYCLE_DATA_FILE is set, and in-memory
    stand-ins otherwise.
    """
    config_manager = get_config_manager()
    settings = config_manager.load_matching_settings()

    connector_config = config_manager.load_connector_config()
    if connector_config is not None:
        connector = APIConnector(connector_config)
    else:
        logger.warning("No purchase-order API configured, using an empty in-memory source")
        connector = InMemoryConnector()

    data_file = os.environ.get(DATA_FILE_ENV)
    repository = JsonFileInvoiceRepository(data_file) if data_file else InMemoryInvoiceRepository()

    return InvoiceService(
        repository=repository,
        matcher=ThreeWayMatcher(connector, settings),
        documents=DocumentStore(os.environ.get(DOCUMENTS_DIR_ENV))
    )


def get_current_actor(request: Request) -> Optional[Actor]:
    """Resolve the caller from gateway headers; None when unauthenticated."""
    user_id = (request.headers.get('x-user-id') or '').strip()
    if not user_id:
        return None
    projects = request.headers.get('x-assigned-projects') or ''
    return Actor(
        id=user_id,
        name=request.headers.get('x-user-name'),
        role=normalize_role(request.headers.get('x-user-role')),
        assigned_projects=tuple(p.strip() for p in projects.split(',') if p.strip()),
        vendor_id=request.headers.get('x-vendor-id') or None
    )


def get_service(request: Request) -> InvoiceService:
    return request.app.state.service


def get_documents(request: Request) -> DocumentStore:
    return request.app.state.documents


# Pydantic Models
class ApprovalRequest(BaseModel):
    decision: str
    notes: Optional[str] = None
    override: bool = False


class HealthResponse(BaseModel):
    status: str
    message: str
    connector: Dict[str, Any]


def create_app(service: Optional[InvoiceService] = None,
               documents: Optional[DocumentStore] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Invoice service; built from configuration when omitted
        documents: Document store; defaults to the service's
    """
    app = FastAPI(
        title="Invoice Lifecycle API",
        description="Invoice status lifecycle, three-way matching and approvals",
        version=__version__
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    service = service or build_default_service()
    app.state.service = service
    app.state.documents = documents or service.documents or DocumentStore()

    @app.exception_handler(InvoiceLifecycleError)
    async def lifecycle_error_handler(request: Request, exc: InvoiceLifecycleError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=True)
        else:
            logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.get("/health", tags=["Health"])
    def health_check(service: InvoiceService = Depends(get_service)):
        """Health check for the application"""
        connector = service.matcher.connector
        return HealthResponse(
            status="ok",
            message="Service is operational",
            connector=connector.get_connection_info()
        )

    @app.get("/invoices", tags=["Invoices"])
    async def list_invoices(actor: Optional[Actor] = Depends(get_current_actor),
                            service: InvoiceService = Depends(get_service)) -> List[Dict[str, Any]]:
        invoices = await service.list_invoices(actor)
        return [invoice.to_dict() for invoice in invoices]

    @app.get("/invoices/{invoice_id}", tags=["Invoices"])
    async def get_invoice(invoice_id: str,
                          actor: Optional[Actor] = Depends(get_current_actor),
                          service: InvoiceService = Depends(get_service)):
        invoice = await service.get_invoice(invoice_id, actor)
        return invoice.to_dict()

    @app.put("/invoices/{invoice_id}", tags=["Invoices"])
    async def update_invoice(invoice_id: str, request: Request,
                             actor: Optional[Actor] = Depends(get_current_actor),
                             service: InvoiceService = Depends(get_service)):
        """Apply a patch (status, poNumber, lineItems, notes, amount) to an invoice."""
        provenance = Provenance.from_headers(request.headers)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Request body must be valid JSON")
        result = await service.update_invoice(invoice_id, body, actor, provenance)
        return result.to_dict()

    @app.post("/invoices/{invoice_id}/approval", tags=["Invoices"])
    async def decide_approval(invoice_id: str, approval: ApprovalRequest, request: Request,
                              actor: Optional[Actor] = Depends(get_current_actor),
                              service: InvoiceService = Depends(get_service)):
        provenance = Provenance.from_headers(request.headers)
        result = await service.decide_approval(
            invoice_id, approval.decision, actor,
            notes=approval.notes, override=approval.override, provenance=provenance
        )
        return result.to_dict()

    @app.get("/projects", tags=["Projects"])
    async def list_projects(actor: Optional[Actor] = Depends(get_current_actor),
                            service: InvoiceService = Depends(get_service)):
        return [project.to_dict() for project in await service.list_projects(actor)]

    @app.get("/rate-cards", tags=["Rate Cards"])
    async def list_rate_cards(actor: Optional[Actor] = Depends(get_current_actor),
                              service: InvoiceService = Depends(get_service)):
        return [card.to_dict() for card in await service.list_rate_cards(actor)]

    @app.get("/users/by-role", tags=["Users"])
    async def list_users_by_role(role: Optional[str] = None,
                                 service: InvoiceService = Depends(get_service)):
        """Active users of a listable role; open to unauthenticated callers."""
        return {"users": await service.list_users_by_role(role)}

    @app.get("/vendor/dashboard", tags=["Vendor"])
    async def vendor_dashboard(actor: Optional[Actor] = Depends(get_current_actor),
                               service: InvoiceService = Depends(get_service)):
        return await service.vendor_dashboard(actor)

    @app.get("/documents/{document_id}/preview", tags=["Documents"])
    async def preview_document(document_id: str,
                               actor: Optional[Actor] = Depends(get_current_actor),
                               documents: DocumentStore = Depends(get_documents),
                               service: InvoiceService = Depends(get_service)):
        """Parsed spreadsheet rows (CSV/XLS/XLSX) for preview."""
        record = documents.get(document_id)
        if record.invoice_id:
            # visibility follows the invoice the document is attached to
            await service.get_invoice(record.invoice_id, actor)
        elif actor is None:
            raise AuthenticationError("Not authenticated")
        return documents.preview(document_id)

    return app


if __name__ == "__main__":
    import uvicorn
    configure_logging()
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
