from fastapi import APIRouter

from boardpilot import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness probe."""
    return {"status": "healthy", "version": __version__}
