"""
Resource catalogue: creation with one inventory unit per seat, lookups and
search.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from ticketing.models.resource import Resource
from ticketing.models.inventory_unit import InventoryUnit, UnitStatus
from ticketing.schemas.resource import ResourceCreate
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


def default_seat_labels(capacity: int) -> list[str]:
    return [str(n) for n in range(1, capacity + 1)]


async def create_resource(db: AsyncSession, resource_data: ResourceCreate) -> Resource:
    """Create a resource and all of its inventory units, every unit available."""
    if resource_data.departs_at <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Departure must be in the future",
        )

    resource = Resource(
        kind=resource_data.kind,
        name=resource_data.name,
        code=resource_data.code,
        origin=resource_data.origin,
        destination=resource_data.destination,
        venue=resource_data.venue,
        departs_at=resource_data.departs_at,
        arrives_at=resource_data.arrives_at,
        price=resource_data.price,
        capacity=resource_data.capacity,
        available_count=resource_data.capacity,
        amenities=list(resource_data.amenities),
    )
    db.add(resource)
    await db.flush()

    labels = resource_data.seat_labels or default_seat_labels(resource_data.capacity)
    db.add_all(
        InventoryUnit(resource_id=resource.id, label=label, status=UnitStatus.AVAILABLE, version=1)
        for label in labels
    )
    await db.flush()
    await db.refresh(resource)

    logger.info(
        "resource_created",
        resource_id=resource.id,
        kind=resource.kind,
        name=resource.name,
        capacity=resource.capacity,
    )
    return resource


async def get_resource(db: AsyncSession, resource_id: int) -> Resource:
    """Get a single resource by ID."""
    result = await db.execute(select(Resource).where(Resource.id == resource_id))
    resource = result.scalar_one_or_none()

    if not resource:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Resource {resource_id} not found",
        )
    return resource


async def search_resources(
    db: AsyncSession,
    kind: Optional[str] = None,
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Resource], int]:
    """
    Search resources with pagination, soonest departure first.

    origin/destination match case-insensitively anywhere in the city name,
    so "nai" finds "Nairobi".
    """
    query = select(Resource)

    if kind:
        query = query.where(Resource.kind == kind)
    if origin:
        query = query.where(Resource.origin.ilike(f"%{origin.strip()}%"))
    if destination:
        query = query.where(Resource.destination.ilike(f"%{destination.strip()}%"))
    if upcoming_only:
        query = query.where(Resource.departs_at >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    resources_query = (
        query
        .order_by(Resource.departs_at.asc(), Resource.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(resources_query)
    resources = list(result.scalars().all())

    return resources, total
