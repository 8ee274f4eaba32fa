"""Discord Schemas — vanishing-channel configs and per-guild channel settings."""

from pydantic import BaseModel, Field

from app.core.domain_types import isoformat_or_none
from app.models.discord import ChannelSetting, VanishingChannel


class VanishingChannelUpsert(BaseModel):
    channel_id: str = Field(min_length=1, max_length=100)
    guild_id: str = Field(min_length=1, max_length=100)
    duration: int = Field(gt=0, description="Seconds before messages vanish")


class VanishingStatsUpdate(BaseModel):
    deleted_count: int = Field(gt=0)


class ChannelSettingPut(BaseModel):
    channel_id: str = Field(min_length=1, max_length=100)


def vanishing_channel_to_dict(channel: VanishingChannel) -> dict:
    return {
        "channel_id": channel.channel_id,
        "guild_id": channel.guild_id,
        "vanish_after": channel.vanish_after,
        "messages_deleted": channel.messages_deleted,
        "last_deletion": isoformat_or_none(channel.last_deletion),
        "created_at": isoformat_or_none(channel.created_at),
        "updated_at": isoformat_or_none(channel.updated_at),
    }


def channel_setting_to_dict(setting: ChannelSetting) -> dict:
    return {
        "guild_id": setting.guild_id,
        "key": setting.key,
        "channel_id": setting.channel_id,
        "created_at": isoformat_or_none(setting.created_at),
        "updated_at": isoformat_or_none(setting.updated_at),
    }
