from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    engine = getattr(request.app.state, "engine", None)
    return {
        "ok": True,
        "engine": engine is not None,
        "store": type(engine.store).__name__ if engine else None,
    }
