"""Client (patient) and tag service."""

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException, ValidationException
from app.core.phone import is_valid_phone_number, normalize_phone_number, phone_search_variations
from app.models.clients import client_tags, clients, organization_tags
from app.schemas.clients import (
    ClientCreate,
    ClientListResponse,
    ClientResponse,
    ClientUpdate,
    TagCreate,
    TagResponse,
)


class ClientService:
    """Manage an organization's clients and their tags."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id

    async def _tags_for(self, client_ids: list[int]) -> dict[int, list[TagResponse]]:
        if not client_ids:
            return {}
        result = await self.db.execute(
            select(client_tags.c.client_id, organization_tags)
            .join(organization_tags, organization_tags.c.id == client_tags.c.tag_id)
            .where(client_tags.c.client_id.in_(client_ids))
            .order_by(organization_tags.c.name)
        )
        tags: dict[int, list[TagResponse]] = {}
        for row in result.mappings().all():
            tags.setdefault(row["client_id"], []).append(TagResponse.model_validate(dict(row)))
        return tags

    async def get_client_row(self, client_id: int) -> dict:
        """Client row of this organization, or 404."""
        result = await self.db.execute(
            select(clients).where(
                clients.c.id == client_id,
                clients.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Client not found")
        return dict(row)

    async def get_client(self, client_id: int) -> ClientResponse:
        """Client with tags."""
        row = await self.get_client_row(client_id)
        tags = await self._tags_for([client_id])
        return ClientResponse(**row, tags=tags.get(client_id, []))

    async def find_by_phone(self, phone: str) -> dict | None:
        """Client whose stored phone matches ``phone`` after normalization."""
        normalized = normalize_phone_number(phone)
        if not normalized:
            return None
        result = await self.db.execute(
            select(clients).where(
                clients.c.organization_id == self.organization_id,
                clients.c.phone.in_(phone_search_variations(normalized)),
            )
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def create_client(self, data: ClientCreate) -> ClientResponse:
        """Create a client; phones are unique per organization."""
        values = data.model_dump()
        values["client_type"] = data.client_type.value

        if values.get("phone") and await self.find_by_phone(values["phone"]):
            raise ConflictException("A client with this phone number already exists")

        try:
            result = await self.db.execute(
                clients.insert()
                .values(organization_id=self.organization_id, **values)
                .returning(clients)
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictException("A client with this phone number already exists")

        return ClientResponse(**dict(result.mappings().one()))

    async def find_or_create_by_phone(
        self, name: str, phone: str, email: str | None = None
    ) -> dict:
        """
        Client matched by normalized phone; the name and email are refreshed.

        Does not commit: callers run this inside their own transaction.
        """
        if not is_valid_phone_number(phone):
            raise ValidationException("Phone number must have between 9 and 15 digits")
        normalized = normalize_phone_number(phone)
        existing = await self.find_by_phone(normalized)

        if existing:
            values = {"name": name}
            if email:
                values["email"] = email
            result = await self.db.execute(
                update(clients)
                .where(clients.c.id == existing["id"])
                .values(**values)
                .returning(clients)
            )
            return dict(result.mappings().one())

        result = await self.db.execute(
            clients.insert()
            .values(
                organization_id=self.organization_id,
                name=name,
                phone=normalized,
                email=email,
            )
            .returning(clients)
        )
        return dict(result.mappings().one())

    async def list_clients(
        self,
        search: str | None = None,
        tag_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> ClientListResponse:
        """Search by name, email or phone, optionally restricted to a tag."""
        conditions = [clients.c.organization_id == self.organization_id]

        if search:
            pattern = f"%{search.strip()}%"
            matches = [clients.c.name.ilike(pattern), clients.c.email.ilike(pattern)]
            variations = phone_search_variations(search)
            if variations:
                matches.append(clients.c.phone.in_(variations))
            conditions.append(or_(*matches))

        if tag_id is not None:
            conditions.append(
                clients.c.id.in_(
                    select(client_tags.c.client_id).where(client_tags.c.tag_id == tag_id)
                )
            )

        total = (
            await self.db.execute(
                select(func.count()).select_from(clients).where(and_(*conditions))
            )
        ).scalar() or 0

        result = await self.db.execute(
            select(clients)
            .where(and_(*conditions))
            .order_by(clients.c.name)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        rows = [dict(row) for row in result.mappings().all()]
        tags = await self._tags_for([row["id"] for row in rows])

        return ClientListResponse(
            total=total,
            page=page,
            page_size=page_size,
            items=[ClientResponse(**row, tags=tags.get(row["id"], [])) for row in rows],
        )

    async def update_client(self, client_id: int, data: ClientUpdate) -> ClientResponse:
        """Partial update."""
        values = data.model_dump(exclude_unset=True)
        if "client_type" in values and values["client_type"] is not None:
            values["client_type"] = data.client_type.value
        if not values:
            return await self.get_client(client_id)

        if values.get("phone"):
            existing = await self.find_by_phone(values["phone"])
            if existing and existing["id"] != client_id:
                raise ConflictException("A client with this phone number already exists")

        result = await self.db.execute(
            update(clients)
            .where(
                clients.c.id == client_id,
                clients.c.organization_id == self.organization_id,
            )
            .values(**values)
            .returning(clients)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Client not found")
        await self.db.commit()
        return await self.get_client(client_id)

    async def create_tag(self, data: TagCreate) -> TagResponse:
        """New tag, unique by name within the organization."""
        try:
            result = await self.db.execute(
                organization_tags.insert()
                .values(organization_id=self.organization_id, name=data.name.strip(), color=data.color)
                .returning(organization_tags)
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictException("A tag with this name already exists")
        return TagResponse.model_validate(dict(result.mappings().one()))

    async def list_tags(self) -> list[TagResponse]:
        """Organization tags ordered by name."""
        result = await self.db.execute(
            select(organization_tags)
            .where(organization_tags.c.organization_id == self.organization_id)
            .order_by(organization_tags.c.name)
        )
        return [TagResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def _get_tag(self, tag_id: int) -> dict:
        result = await self.db.execute(
            select(organization_tags).where(
                organization_tags.c.id == tag_id,
                organization_tags.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Tag not found")
        return dict(row)

    async def add_tag(self, client_id: int, tag_id: int) -> list[TagResponse]:
        """Attach a tag to a client (idempotent)."""
        await self.get_client_row(client_id)
        await self._get_tag(tag_id)

        exists = await self.db.execute(
            select(client_tags.c.tag_id).where(
                client_tags.c.client_id == client_id,
                client_tags.c.tag_id == tag_id,
            )
        )
        if not exists.first():
            await self.db.execute(client_tags.insert().values(client_id=client_id, tag_id=tag_id))
            await self.db.commit()

        return (await self._tags_for([client_id])).get(client_id, [])

    async def remove_tag(self, client_id: int, tag_id: int) -> list[TagResponse]:
        """Detach a tag from a client."""
        await self.get_client_row(client_id)
        await self.db.execute(
            delete(client_tags).where(
                client_tags.c.client_id == client_id,
                client_tags.c.tag_id == tag_id,
            )
        )
        await self.db.commit()
        return (await self._tags_for([client_id])).get(client_id, [])

    async def client_tags(self, client_id: int) -> list[TagResponse]:
        await self.get_client_row(client_id)
        return (await self._tags_for([client_id])).get(client_id, [])
