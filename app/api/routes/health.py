from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring. Not rate limited, so health checks never
    consume a client's quota.

    Returns:
        dict: ``{"status": "ok"}``.
    """

    return {"status": "ok"}
