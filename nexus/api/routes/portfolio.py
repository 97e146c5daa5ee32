"""Portfolio valuation route."""
from fastapi import APIRouter, Depends

from nexus.api.deps import get_app_settings, get_broker
from nexus.core.config import Settings
from nexus.providers.base import BrokerProvider
from nexus.services.portfolio import fetch_portfolio

router = APIRouter()


@router.get("/portfolio")
async def get_portfolio(
    settings: Settings = Depends(get_app_settings),
    broker: BrokerProvider = Depends(get_broker),
):
    valuation = await fetch_portfolio(broker, settings.stablecoin_set)
    return valuation.to_dict()
