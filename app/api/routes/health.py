"""Health routes for the service and its event data sources."""
import logging
from typing import Callable, Dict, List

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.models import DataSource
from app.services.clients.base import DataClient
from app.services.clients.registry import configured_sources
from app.api.routes.sync import get_client_resolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


def get_configured_sources() -> List[DataSource]:
    return configured_sources()


@router.get("/clients")
async def data_client_health(
    sources: List[DataSource] = Depends(get_configured_sources),
    client_resolver: Callable[[DataSource], DataClient] = Depends(get_client_resolver)
):
    """
    Check connectivity to every configured data source.

    Returns 200 when all sources are healthy, 503 otherwise.
    """
    components: Dict[str, Dict] = {}
    all_healthy = True

    for source in sources:
        try:
            problem = await client_resolver(source).check_health()
        except httpx.HTTPError as e:
            logger.error(f"{source.value} health check failed: {e}")
            problem = str(e) or type(e).__name__

        if problem is None:
            components[source.value] = {"status": "healthy"}
        else:
            components[source.value] = {"status": "unhealthy", "error": problem}
            all_healthy = False

    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": "healthy" if all_healthy else "degraded", "components": components},
    )
