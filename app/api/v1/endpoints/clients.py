"""Client (patient) and tag endpoints."""

from fastapi import APIRouter, File, Form, Query, UploadFile, status
from pydantic import ValidationError

from app.core.exceptions import BadRequestException
from app.dependencies import AIClientDep, CurrentOrganizationId, DatabaseSession
from app.schemas.assistant import ColumnMapping
from app.schemas.clients import (
    ClientCreate,
    ClientImportResult,
    ClientListResponse,
    ClientResponse,
    ClientUpdate,
    TagCreate,
    TagResponse,
)
from app.services.assistant_service import AssistantService
from app.services.client_import import ClientImporter
from app.services.client_service import ClientService

router = APIRouter(tags=["Clients"])

MAX_IMPORT_BYTES = 5 * 1024 * 1024


@router.post(
    "/clients",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create client",
)
async def create_client(
    data: ClientCreate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ClientResponse:
    """Create a client; the phone must be unique in the organization."""
    return await ClientService(db, organization_id).create_client(data)


@router.get("/clients", response_model=ClientListResponse, summary="List clients")
async def list_clients(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    search: str | None = Query(None, description="Name, email or phone"),
    tag_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
) -> ClientListResponse:
    """
    Search clients.

    Phone searches match regardless of spaces, dashes or the country code.
    """
    return await ClientService(db, organization_id).list_clients(search, tag_id, page, page_size)


@router.post(
    "/clients/import",
    response_model=ClientImportResult,
    status_code=status.HTTP_200_OK,
    summary="Import clients from CSV",
)
async def import_clients(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    ai_client: AIClientDep,
    file: UploadFile = File(...),
    mapping: str | None = Form(None, description="JSON object: client field -> CSV header"),
) -> ClientImportResult:
    """
    Import a CSV of clients.

    Without ``mapping`` the AI assistant suggests which column feeds each
    client field.

    Args:
        organization_id: Caller's organization
        db: Database session
        ai_client: AI client used when no mapping is given
        file: CSV file
        mapping: Optional column mapping as JSON

    Returns:
        Imported, skipped and duplicate counts plus per-row errors
    """
    column_mapping = None
    if mapping:
        try:
            column_mapping = ColumnMapping.model_validate_json(mapping)
        except ValidationError as e:
            raise BadRequestException("Invalid column mapping") from e

    content = await file.read()
    if len(content) > MAX_IMPORT_BYTES:
        raise BadRequestException("The file is larger than 5 MB")

    importer = ClientImporter(db, organization_id, AssistantService(ai_client))
    return await importer.import_csv(content, column_mapping)


@router.get("/clients/{client_id}", response_model=ClientResponse, summary="Get client")
async def get_client(
    client_id: int,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ClientResponse:
    """Client with tags."""
    return await ClientService(db, organization_id).get_client(client_id)


@router.patch("/clients/{client_id}", response_model=ClientResponse, summary="Update client")
async def update_client(
    client_id: int,
    data: ClientUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ClientResponse:
    """Partial update of a client."""
    return await ClientService(db, organization_id).update_client(client_id, data)


@router.get("/tags", response_model=list[TagResponse], summary="List tags")
async def list_tags(organization_id: CurrentOrganizationId, db: DatabaseSession):
    """Tags of the organization."""
    return await ClientService(db, organization_id).list_tags()


@router.post(
    "/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED, summary="Create tag"
)
async def create_tag(data: TagCreate, organization_id: CurrentOrganizationId, db: DatabaseSession):
    """Create a tag; names are unique per organization."""
    return await ClientService(db, organization_id).create_tag(data)


@router.get(
    "/clients/{client_id}/tags", response_model=list[TagResponse], summary="Client tags"
)
async def client_tags(client_id: int, organization_id: CurrentOrganizationId, db: DatabaseSession):
    return await ClientService(db, organization_id).client_tags(client_id)


@router.post(
    "/clients/{client_id}/tags/{tag_id}",
    response_model=list[TagResponse],
    summary="Tag client",
)
async def add_tag(
    client_id: int, tag_id: int, organization_id: CurrentOrganizationId, db: DatabaseSession
):
    """Attach a tag to a client."""
    return await ClientService(db, organization_id).add_tag(client_id, tag_id)


@router.delete(
    "/clients/{client_id}/tags/{tag_id}",
    response_model=list[TagResponse],
    summary="Untag client",
)
async def remove_tag(
    client_id: int, tag_id: int, organization_id: CurrentOrganizationId, db: DatabaseSession
):
    """Detach a tag from a client."""
    return await ClientService(db, organization_id).remove_tag(client_id, tag_id)
