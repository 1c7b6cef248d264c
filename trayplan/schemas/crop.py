from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RecipeCreate(BaseModel):
    name: str
    germination_days: float = Field(ge=0)
    blackout_days: float = Field(0, ge=0)
    light_days: float = Field(ge=0)
    suspend_water_hours: float = Field(0, ge=0)
    notes: Optional[str] = None


class RecipeUpdate(BaseModel):
    name: Optional[str] = None
    germination_days: Optional[float] = Field(None, ge=0)
    blackout_days: Optional[float] = Field(None, ge=0)
    light_days: Optional[float] = Field(None, ge=0)
    suspend_water_hours: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CropCreate(BaseModel):
    recipe_id: int
    tray_number: Optional[str] = None
    planted_at: Optional[datetime] = None
    notes: Optional[str] = None


