from app.models.agent import Agent
from app.models.bot_personality import BotPersonality
from app.models.channel_config import ChannelConfig
from app.models.chat_session import ChatSession
from app.models.customer import Customer
from app.models.message import Message
from app.models.n8n_workflow import N8nWorkflow
from app.models.organization import Organization
from app.models.waha_session import WahaSession
from app.models.webhook_log import WebhookLog

__all__ = [
    "Agent",
    "BotPersonality",
    "ChannelConfig",
    "ChatSession",
    "Customer",
    "Message",
    "N8nWorkflow",
    "Organization",
    "WahaSession",
    "WebhookLog",
]
