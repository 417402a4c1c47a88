"""Selection options exposed to the bot and web UI."""

from typing import Optional

from pydantic import BaseModel, Field


class SkinToneOption(BaseModel):
    """Skin tone entry of the attribute catalog."""

    name: str
    rarity: Optional[str] = None
    selected: bool = Field(default=False, description="Per-user selection flag")


class RarityOption(BaseModel):
    """Rarity tier entry of the attribute catalog."""

    name: str
    selected: bool = Field(default=False, description="Per-user selection flag")
