"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    db_status = "disconnected"
    pool = getattr(request.app.state, "db_pool", None)
    if pool is not None:
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            db_status = "connected"
        except Exception as exc:
            db_status = f"error: {exc}"

    service = getattr(request.app.state, "alliance_service", None)
    return {
        "ok": True,
        "data": {
            "db": db_status,
            "alliance_members": len(service.cache) if service else 0,
            "version": "0.1.0",
        },
    }
