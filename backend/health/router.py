from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from backend.catalog.service import CatalogStore, get_catalog
from backend.health.service import health_supabase_info
from backend.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_supabase_info())

@router.get("/catalog")
async def health_catalog(catalog: CatalogStore = Depends(get_catalog)):
    info = await run_in_threadpool(catalog.health)
    status_code = 503 if info.get("status") == "error" else 200
    return JSONResponse(info, status_code=status_code)

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)
