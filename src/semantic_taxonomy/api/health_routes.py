from fastapi import APIRouter
from ..config import settings

router = APIRouter(tags=["health"])

@router.get("/health")
def health():
    return {
        "status": "ok",
        "embedding_model": settings.embedding_model,
        "embedding_dimension": settings.embedding_dimension,
    }
