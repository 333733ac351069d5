"""
Resource endpoints: creation, search (cached in Redis) and seat maps.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.session import get_db
from ticketing.schemas.resource import ResourceCreate, ResourceResponse, ResourceListResponse, UnitResponse
from ticketing.services import inventory_store
from ticketing.services.resource_service import create_resource, get_resource, search_resources
from ticketing.services.reservation_service import ReservationService, get_reservation_service
from ticketing.services.cache_service import get_cached_resources, set_cached_resources, invalidate_resource_cache
from ticketing.core.security import get_current_owner_id
from ticketing.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/resources", tags=["Resources"])


async def release_expired_holds(service: ReservationService, resource_id: Optional[int] = None):
    """Runs before availability is read, in its own transaction."""
    if await service.release_expired_holds(resource_id):
        await invalidate_resource_cache()


@router.post("/", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource_endpoint(
    resource_data: ResourceCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a bus run, flight or event together with its seats."""
    resource = await create_resource(db, resource_data)
    await db.commit()
    await invalidate_resource_cache()
    return resource


@router.get("/", response_model=ResourceListResponse)
async def search_resources_endpoint(
    kind: Optional[Literal["bus", "flight", "event"]] = Query(None),
    origin: Optional[str] = Query(None, max_length=120),
    destination: Optional[str] = Query(None, max_length=120),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """
    Search upcoming resources by kind and route.
    Results are cached in Redis and invalidated whenever availability changes.
    """
    cached = await get_cached_resources(kind, origin, destination, page, page_size)
    if cached:
        logger.info("resources_list_cache_hit", page=page)
        cached["cached"] = True
        return ResourceListResponse(**cached)

    await release_expired_holds(service)
    resources, total = await search_resources(db, kind, origin, destination, page, page_size)

    response_data = {
        "resources": [ResourceResponse.model_validate(r).model_dump() for r in resources],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }

    await set_cached_resources(kind, origin, destination, page, page_size, response_data)

    return ResourceListResponse(**response_data)


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource_endpoint(
    resource_id: int,
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """Get a single resource. Not cached (needs real-time availability)."""
    await release_expired_holds(service, resource_id)
    return await get_resource(db, resource_id)


@router.get("/{resource_id}/units", response_model=list[UnitResponse])
async def list_units_endpoint(
    resource_id: int,
    available_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """Seat map of a resource, or only the seats still available."""
    await release_expired_holds(service, resource_id)
    await get_resource(db, resource_id)
    return await inventory_store.list_units(db, resource_id, available_only=available_only)
