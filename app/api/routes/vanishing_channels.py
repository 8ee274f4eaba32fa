"""Vanishing Channel Routes — Discord channels whose messages auto-delete after a delay.

Invariants:
    - POST upserts by channel_id; re-configuring keeps messages_deleted
    - Stats increments are applied in SQL (messages_deleted + n) so concurrent bot
      workers never lose counts
    - Every route is rate-limited with the "api" preset (60 / min per caller)
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_rls_db, rate_limit, require_api_key
from app.core.domain_types import utc_now
from app.core.errors import ResourceNotFoundError
from app.models.discord import VanishingChannel
from app.schemas.discord import (
    VanishingChannelUpsert, VanishingStatsUpdate, vanishing_channel_to_dict,
)

router = APIRouter(
    prefix="/api/v1/discord/vanish", tags=["discord"],
    dependencies=[Depends(require_api_key), Depends(rate_limit("api"))],
)


async def _get_or_404(db: AsyncSession, channel_id: str) -> VanishingChannel:
    channel = await db.get(VanishingChannel, channel_id)
    if channel is None:
        raise ResourceNotFoundError("Vanishing channel", channel_id)
    return channel


@router.post("")
async def upsert_channel(body: VanishingChannelUpsert, db: AsyncSession = Depends(get_rls_db)):
    channel = await db.get(VanishingChannel, body.channel_id)
    if channel is None:
        channel = VanishingChannel(
            channel_id=body.channel_id,
            guild_id=body.guild_id,
            vanish_after=body.duration,
            messages_deleted=0,
        )
        db.add(channel)
    else:
        channel.guild_id = body.guild_id
        channel.vanish_after = body.duration
    await db.commit()
    return vanishing_channel_to_dict(channel)


@router.get("")
async def list_channels(
    guild_id: str | None = Query(None),
    db: AsyncSession = Depends(get_rls_db),
):
    query = select(VanishingChannel)
    if guild_id:
        query = query.where(VanishingChannel.guild_id == guild_id)
    result = await db.execute(query.order_by(VanishingChannel.created_at, VanishingChannel.channel_id))
    return [vanishing_channel_to_dict(c) for c in result.scalars().all()]


@router.get("/{channel_id}")
async def get_channel(channel_id: str, db: AsyncSession = Depends(get_rls_db)):
    return vanishing_channel_to_dict(await _get_or_404(db, channel_id))


@router.delete("/{channel_id}")
async def delete_channel(channel_id: str, db: AsyncSession = Depends(get_rls_db)):
    channel = await _get_or_404(db, channel_id)
    await db.delete(channel)
    await db.commit()
    return {"success": True}


@router.patch("/{channel_id}/stats")
async def record_deletions(
    channel_id: str,
    body: VanishingStatsUpdate,
    db: AsyncSession = Depends(get_rls_db),
):
    channel = await _get_or_404(db, channel_id)
    channel.messages_deleted = VanishingChannel.messages_deleted + body.deleted_count
    channel.last_deletion = utc_now()
    await db.commit()
    await db.refresh(channel)
    return {"success": True, "new_count": channel.messages_deleted}
