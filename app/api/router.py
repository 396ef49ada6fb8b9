from fastapi import APIRouter

# Generated modules register here, e.g.
# router.include_router(notes.router, prefix="/notes", tags=["Notes"])
router = APIRouter()
