import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.database import get_db
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.client import Client
from invoicehub.models.invoice import Invoice
from invoicehub.schemas.client import ClientCreate, ClientResponse, ClientUpdate
from invoicehub.schemas.common import PageParams, PaginatedResponse, iso
from invoicehub.services.invoice_service import get_owned_client

logger = structlog.get_logger()
router = APIRouter()


def _to_response(c: Client) -> ClientResponse:
    return ClientResponse(
        id=str(c.id),
        name=c.name,
        email=c.email,
        company=c.company,
        phone=c.phone,
        address=c.address,
        created_at=iso(c.created_at) or "",
        updated_at=iso(c.updated_at) or "",
    )


@router.get("", response_model=PaginatedResponse[ClientResponse])
async def list_clients(
    paging: PageParams = Depends(),
    search: str = Query(None, max_length=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    q = select(Client).where(Client.user_id == user_id)
    count_q = select(func.count(Client.id)).where(Client.user_id == user_id)
    if search:
        pattern = f"%{search}%"
        cond = or_(Client.name.ilike(pattern), Client.email.ilike(pattern), Client.company.ilike(pattern))
        q = q.where(cond)
        count_q = count_q.where(cond)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(q.order_by(Client.name).offset(paging.offset).limit(paging.limit))
    items = [_to_response(c) for c in result.scalars().all()]
    return paging.response(items, total)


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await get_owned_client(db, client_id, current_user["user_id"]))


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    body: ClientCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    client = Client(user_id=current_user["user_id"], **body.model_dump())
    db.add(client)
    await db.flush()
    logger.info("client_created", client_id=str(client.id))
    return _to_response(client)


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: uuid.UUID,
    body: ClientUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    client = await get_owned_client(db, client_id, current_user["user_id"])
    for field, val in body.model_dump(exclude_unset=True).items():
        setattr(client, field, val)
    await db.flush()
    return _to_response(client)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    client = await get_owned_client(db, client_id, current_user["user_id"])
    invoice_count = (
        await db.execute(select(func.count(Invoice.id)).where(Invoice.client_id == client.id))
    ).scalar() or 0
    if invoice_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a client that has invoices",
        )
    await db.delete(client)
    await db.flush()
    logger.info("client_deleted", client_id=str(client_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
