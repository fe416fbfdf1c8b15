from fastapi import APIRouter, Depends, HTTPException

from finanzas.dependencies import get_storage, require_auth
from finanzas.models.schemas import BotConfig, BotConfigCreate, BotConfigUpdate
from finanzas.storage.base import Storage

router = APIRouter(prefix="/bot", tags=["bot"], dependencies=[Depends(require_auth)])


@router.get("/config")
async def get_bot_config(storage: Storage = Depends(get_storage)):
    config = await storage.get_bot_config()
    if not config:
        return {"bot_token": "", "is_active": False}
    return config


@router.post("/config", response_model=BotConfig, status_code=201)
async def create_bot_config(config: BotConfigCreate, storage: Storage = Depends(get_storage)):
    return await storage.create_bot_config(config)


@router.put("/config/{config_id}", response_model=BotConfig)
async def update_bot_config(config_id: int, changes: BotConfigUpdate, storage: Storage = Depends(get_storage)):
    config = await storage.update_bot_config(config_id, changes)
    if not config:
        raise HTTPException(status_code=404, detail="Bot config not found")
    return config
