"""Assistant session routes: messages, trade confirmation, reset."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from nexus.agents.response_templates import build_system_prompt
from nexus.api.deps import (
    get_app_settings,
    get_assistant_session,
    get_broker,
    get_optional_broker,
    get_optional_text_client,
)
from nexus.core.config import Settings
from nexus.core.logging import get_logger
from nexus.providers.base import BrokerProvider
from nexus.providers.text_generation import TextGenerationClient
from nexus.services.assistant import AssistantSession, portfolio_context, reset_session

router = APIRouter()
logger = get_logger(__name__)


class MessageRequest(BaseModel):
    text: str


def _outcome_body(outcome) -> dict:
    return {
        "message": outcome.message,
        "submitted": outcome.submitted,
        "chips": outcome.chips,
        "trade": outcome.trade.to_dict(),
    }


@router.get("/session")
async def get_session(session: AssistantSession = Depends(get_assistant_session)):
    return session.to_dict()


@router.delete("/session")
async def delete_session():
    """Start over: new transcript, no pending trades."""
    reset_session()
    logger.info("Assistant session reset")
    return {"status": "reset"}


@router.post("/session/messages")
async def post_message(
    body: MessageRequest,
    settings: Settings = Depends(get_app_settings),
    session: AssistantSession = Depends(get_assistant_session),
    broker: Optional[BrokerProvider] = Depends(get_optional_broker),
    llm: Optional[TextGenerationClient] = Depends(get_optional_text_client),
):
    holdings, total_value, connected = await portfolio_context(broker, settings.stablecoin_set)
    system_prompt = build_system_prompt(holdings, total_value, connected)
    reply = await session.send_message(body.text, llm, system_prompt)
    return reply.to_dict()


@router.post("/session/trades/{trade_id}/confirm")
async def confirm_trade(
    trade_id: str,
    session: AssistantSession = Depends(get_assistant_session),
    broker: BrokerProvider = Depends(get_broker),
):
    outcome = await session.confirm_trade(trade_id, broker)
    return _outcome_body(outcome)


@router.post("/session/trades/{trade_id}/cancel")
async def cancel_trade(trade_id: str, session: AssistantSession = Depends(get_assistant_session)):
    outcome = session.cancel_trade(trade_id)
    return _outcome_body(outcome)
