"""CSV import of clients."""

import csv
import io
from datetime import date, datetime

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestException
from app.core.phone import normalize_phone_number
from app.models.clients import clients
from app.schemas.assistant import ColumnMapping, ColumnMappingRequest
from app.schemas.clients import ClientCreate, ClientImportResult, ClientImportRowError
from app.services.assistant_service import AssistantService
from app.services.client_service import ClientService

logger = structlog.get_logger(__name__)

MAX_IMPORT_ROWS = 5000
SAMPLE_ROWS = 3
DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%y")
PUBLIC_TYPES = {"public", "publico", "público", "seguro", "mutua"}


def read_csv(content: bytes) -> tuple[list[str], list[list[str]]]:
    """Headers and data rows of a CSV file (comma, semicolon or tab separated)."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    if not text.strip():
        raise BadRequestException("The file is empty")

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel

    rows = [row for row in csv.reader(io.StringIO(text), dialect) if any(cell.strip() for cell in row)]
    headers = [header.strip() for header in rows[0]]
    data = rows[1:]
    if len(data) > MAX_IMPORT_ROWS:
        raise BadRequestException(f"At most {MAX_IMPORT_ROWS} rows can be imported at once")
    return headers, data


def parse_date(value: str) -> date | None:
    """Dates as written in Spanish spreadsheets."""
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def build_client(row: dict[str, str]) -> ClientCreate:
    """Client payload from a mapped row; raises ValidationError on bad data."""
    values: dict = {field: value.strip() for field, value in row.items() if value and value.strip()}
    if "birth_date" in values:
        values["birth_date"] = parse_date(values["birth_date"])
    if "client_type" in values:
        values["client_type"] = (
            "public" if values["client_type"].lower() in PUBLIC_TYPES else "private"
        )
    return ClientCreate(**values)


class ClientImporter:
    """Import spreadsheet rows as clients of an organization."""

    def __init__(
        self,
        db: AsyncSession,
        organization_id: int,
        assistant: AssistantService | None = None,
    ):
        """Initialize importer; the assistant is used when no mapping is given."""
        self.db = db
        self.organization_id = organization_id
        self.clients = ClientService(db, organization_id)
        self.assistant = assistant

    async def resolve_mapping(
        self, headers: list[str], rows: list[list[str]], mapping: ColumnMapping | None
    ) -> ColumnMapping:
        """Given mapping restricted to real headers, or one suggested by the assistant."""
        if mapping is None:
            if self.assistant is None:
                raise BadRequestException("A column mapping is required")
            return await self.assistant.map_columns(
                ColumnMappingRequest(headers=headers, sample_rows=rows[:SAMPLE_ROWS])
            )

        known = set(headers)
        return ColumnMapping(
            **{field: value if value in known else None for field, value in mapping.model_dump().items()}
        )

    async def import_csv(
        self, content: bytes, mapping: ColumnMapping | None = None
    ) -> ClientImportResult:
        """
        Insert one client per row.

        Rows without a name are skipped, rows whose phone already exists (in
        the organization or earlier in the file) count as duplicates, and
        invalid rows are reported with their 1-based line number.
        """
        headers, rows = read_csv(content)
        mapping = await self.resolve_mapping(headers, rows, mapping)
        columns = {
            field: headers.index(header)
            for field, header in mapping.model_dump().items()
            if header is not None
        }
        if "name" not in columns:
            raise BadRequestException("No column is mapped to the client name")

        imported = skipped = duplicates = 0
        errors: list[ClientImportRowError] = []
        seen_phones: set[str] = set()

        try:
            for line, row in enumerate(rows, start=2):
                mapped = {
                    field: row[index] if index < len(row) else ""
                    for field, index in columns.items()
                }
                if not mapped["name"].strip():
                    skipped += 1
                    continue

                try:
                    client = build_client(mapped)
                except ValidationError as e:
                    first = e.errors()[0]
                    field = ".".join(str(part) for part in first["loc"])
                    errors.append(ClientImportRowError(row=line, error=f"{field}: {first['msg']}"))
                    continue

                if client.phone:
                    phone = normalize_phone_number(client.phone)
                    if phone in seen_phones or await self.clients.find_by_phone(phone):
                        duplicates += 1
                        continue
                    seen_phones.add(phone)

                values = client.model_dump()
                values["client_type"] = client.client_type.value
                await self.db.execute(
                    clients.insert().values(organization_id=self.organization_id, **values)
                )
                imported += 1

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "clients_imported",
            organization_id=self.organization_id,
            imported=imported,
            skipped=skipped,
            duplicates=duplicates,
            errors=len(errors),
        )
        return ClientImportResult(
            imported=imported,
            skipped=skipped,
            duplicates=duplicates,
            column_mapping=mapping.model_dump(),
            errors=errors,
        )
