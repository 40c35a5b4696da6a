from fastapi import APIRouter
from groupcall.api import group_calls

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


router.include_router(group_calls.router)
