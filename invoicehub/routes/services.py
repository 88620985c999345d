import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.database import get_db
from invoicehub.errors import NotFoundError
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.service import Service
from invoicehub.schemas.common import PageParams, PaginatedResponse, iso, money
from invoicehub.schemas.service import ServiceCreate, ServiceResponse, ServiceUpdate

logger = structlog.get_logger()
router = APIRouter()


def _to_response(s: Service) -> ServiceResponse:
    return ServiceResponse(
        id=str(s.id),
        name=s.name,
        description=s.description,
        category=s.category,
        price=money(s.price),
        unit=s.unit,
        is_active=s.is_active,
        created_at=iso(s.created_at) or "",
        updated_at=iso(s.updated_at) or "",
    )


async def _get_service(db: AsyncSession, service_id, user_id) -> Service:
    result = await db.execute(
        select(Service).where(Service.id == service_id, Service.user_id == user_id)
    )
    service = result.scalar_one_or_none()
    if not service:
        raise NotFoundError("Service not found")
    return service


@router.get("", response_model=PaginatedResponse[ServiceResponse])
async def list_services(
    paging: PageParams = Depends(),
    category: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    q = select(Service).where(Service.user_id == user_id)
    count_q = select(func.count(Service.id)).where(Service.user_id == user_id)
    if category:
        q = q.where(Service.category == category)
        count_q = count_q.where(Service.category == category)
    if is_active is not None:
        q = q.where(Service.is_active == is_active)
        count_q = count_q.where(Service.is_active == is_active)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(q.order_by(Service.name).offset(paging.offset).limit(paging.limit))
    items = [_to_response(s) for s in result.scalars().all()]
    return paging.response(items, total)


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await _get_service(db, service_id, current_user["user_id"]))


@router.post("", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(
    body: ServiceCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = Service(user_id=current_user["user_id"], **body.model_dump())
    db.add(service)
    await db.flush()
    logger.info("service_created", service_id=str(service.id))
    return _to_response(service)


@router.patch("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: uuid.UUID,
    body: ServiceUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = await _get_service(db, service_id, current_user["user_id"])
    for field, val in body.model_dump(exclude_unset=True).items():
        setattr(service, field, val)
    await db.flush()
    return _to_response(service)


@router.delete("/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(
    service_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = await _get_service(db, service_id, current_user["user_id"])
    await db.delete(service)
    await db.flush()
    logger.info("service_deleted", service_id=str(service_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
