# =======================================================================================
# vehicle_gate/api/routes/cache.py - Validation Cache Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends, HTTPException
from ...models.schemas import CacheClearResponse, CacheStats
from ...workers.antenna_worker import AntennaWorker
from ..dependencies import get_antenna_worker

router = APIRouter()

@router.get("/cache", response_model=CacheStats)
async def cache_stats(worker: AntennaWorker = Depends(get_antenna_worker)):
    return worker.validator.cache_stats()

@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(worker: AntennaWorker = Depends(get_antenna_worker)):
    """Forget every cached decision."""
    removed = worker.validator.clear()
    return CacheClearResponse(success=True, removed=removed)

@router.delete("/cache/{tag}", response_model=CacheClearResponse)
async def invalidate_tag(tag: str, worker: AntennaWorker = Depends(get_antenna_worker)):
    """Forget the cached decision for one tag, e.g. after its permission changed."""
    if not worker.validator.invalidate(tag):
        raise HTTPException(status_code=404, detail=f"Tag {tag} is not cached")
    return CacheClearResponse(success=True, removed=1)
