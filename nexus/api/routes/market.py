"""Market snapshot route."""
from fastapi import APIRouter, Depends

from nexus.api.deps import get_app_settings, get_broker
from nexus.core.config import Settings
from nexus.providers.base import BrokerProvider

router = APIRouter()


@router.get("/market")
async def get_market(
    settings: Settings = Depends(get_app_settings),
    broker: BrokerProvider = Depends(get_broker),
):
    """Price, 24h change and volume for the configured products."""
    tickers = await broker.list_products(settings.market_products_list)
    return {"market": [t.to_dict() for t in tickers]}
