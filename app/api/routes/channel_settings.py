"""Channel Setting Routes — per-guild named channel bindings (e.g. "applications" -> channel).

Invariants:
    - Every route is rate-limited with the "api" preset (60 / min per caller)
"""

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_rls_db, rate_limit, require_api_key
from app.core.errors import ResourceNotFoundError
from app.models.discord import ChannelSetting
from app.schemas.discord import ChannelSettingPut, channel_setting_to_dict

router = APIRouter(
    prefix="/api/v1/discord/channels", tags=["discord"],
    dependencies=[Depends(require_api_key), Depends(rate_limit("api"))],
)


async def _find(db: AsyncSession, guild_id: str, key: str) -> ChannelSetting | None:
    result = await db.execute(
        select(ChannelSetting).where(
            ChannelSetting.guild_id == guild_id, ChannelSetting.key == key,
        ),
    )
    return result.scalar_one_or_none()


@router.get("/{guild_id}")
async def get_guild_settings(guild_id: str, db: AsyncSession = Depends(get_rls_db)):
    result = await db.execute(
        select(ChannelSetting)
        .where(ChannelSetting.guild_id == guild_id)
        .order_by(ChannelSetting.key),
    )
    return {
        "guild_id": guild_id,
        "settings": {s.key: s.channel_id for s in result.scalars().all()},
    }


@router.get("/{guild_id}/{key}")
async def get_setting(guild_id: str, key: str, db: AsyncSession = Depends(get_rls_db)):
    setting = await _find(db, guild_id, key)
    if setting is None:
        raise ResourceNotFoundError("Channel setting", f"{guild_id}/{key}")
    return channel_setting_to_dict(setting)


@router.put("/{guild_id}/{key}")
async def put_setting(
    guild_id: str,
    key: str,
    body: ChannelSettingPut,
    db: AsyncSession = Depends(get_rls_db),
):
    setting = await _find(db, guild_id, key)
    if setting is None:
        setting = ChannelSetting(guild_id=guild_id, key=key, channel_id=body.channel_id)
        db.add(setting)
    else:
        setting.channel_id = body.channel_id
    await db.commit()
    return channel_setting_to_dict(setting)


@router.delete("/{guild_id}/{key}")
async def delete_setting(guild_id: str, key: str, db: AsyncSession = Depends(get_rls_db)):
    setting = await _find(db, guild_id, key)
    if setting is None:
        raise ResourceNotFoundError("Channel setting", f"{guild_id}/{key}")
    await db.delete(setting)
    await db.commit()
    return {"success": True}


@router.delete("/{guild_id}")
async def delete_guild_settings(guild_id: str, db: AsyncSession = Depends(get_rls_db)):
    result = await db.execute(
        delete(ChannelSetting).where(ChannelSetting.guild_id == guild_id),
    )
    await db.commit()
    return {"success": True, "deleted_count": result.rowcount or 0}
