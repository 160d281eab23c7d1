"""Channel configuration lookups with an explicit per-organization default."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.channel_config import ChannelConfig

WHATSAPP_CHANNEL = "whatsapp"
DEFAULT_CONFIG_NAME = "WhatsApp (default)"


class ChannelConfigService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_default_channel_config(
        self, organization_id: UUID, channel: str = WHATSAPP_CHANNEL
    ) -> Optional[ChannelConfig]:
        return (
            self.db.query(ChannelConfig)
            .filter(
                ChannelConfig.organization_id == organization_id,
                ChannelConfig.channel == channel,
                ChannelConfig.is_default.is_(True),
            )
            .first()
        )

    def get_default_channel_config(
        self, organization_id: UUID, channel: str = WHATSAPP_CHANNEL
    ) -> ChannelConfig:
        """
        The organization's default config for ``channel``, created if missing.

        Flushes but does not commit; the caller owns the transaction.
        """
        config = self.find_default_channel_config(organization_id, channel)
        if config is not None:
            return config
        config = ChannelConfig(
            organization_id=organization_id,
            name=DEFAULT_CONFIG_NAME,
            channel=channel,
            is_default=True,
            settings={},
        )
        self.db.add(config)
        self.db.flush()
        return config
