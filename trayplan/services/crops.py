import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trayplan.models.crop import Crop, Recipe
from trayplan.schemas.crop import CropCreate, RecipeCreate, RecipeUpdate
from trayplan.services.crop_tasks import schedule_crop_tasks

logger = logging.getLogger(__name__)


class RecipeNotFound(LookupError):
    pass


async def create_recipe(db: AsyncSession, data: RecipeCreate) -> Recipe:
    recipe = Recipe(**data.model_dump(), is_active=True)
    db.add(recipe)
    await db.commit()
    await db.refresh(recipe)
    return recipe


async def update_recipe(
    db: AsyncSession, recipe_id: int, data: RecipeUpdate, now: Optional[datetime] = None
) -> Recipe:
    """Apply changes to a recipe and reschedule the future work of every growing crop using it."""
    now = now or datetime.now(timezone.utc)
    recipe = await db.get(Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFound(f"Recipe {recipe_id} not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(recipe, field, value)
    await db.commit()

    crop_ids = (await db.scalars(
        select(Crop.id).where(Crop.recipe_id == recipe_id, Crop.current_stage != "harvested")
    )).all()
    for crop_id in crop_ids:
        await schedule_crop_tasks(db, crop_id, now)
    logger.info("update_recipe: recipe %d updated, %d crops rescheduled", recipe_id, len(crop_ids))

    await db.refresh(recipe)
    return recipe


async def create_crop(db: AsyncSession, data: CropCreate) -> Crop:
    recipe = await db.get(Recipe, data.recipe_id)
    if recipe is None:
        raise RecipeNotFound(f"Recipe {data.recipe_id} not found")

    crop = Crop(
        recipe_id=recipe.id,
        tray_number=data.tray_number,
        notes=data.notes,
        current_stage="germination",
        germination_at=data.planted_at or datetime.now(timezone.utc),
    )
    db.add(crop)
    await db.commit()
    await schedule_crop_tasks(db, crop.id)
    await db.refresh(crop)
    return crop


async def recalculate_all(db: AsyncSession, now: datetime) -> tuple[int, int]:
    """Reschedule the future work of every crop not yet harvested. Returns (rescheduled, failed)."""
    crop_ids = (await db.scalars(
        select(Crop.id).where(Crop.current_stage != "harvested").order_by(Crop.id)
    )).all()

    rescheduled = failed = 0
    for crop_id in crop_ids:
        try:
            await schedule_crop_tasks(db, crop_id, now)
            rescheduled += 1
        except Exception as exc:
            logger.warning("recalculate_all: failed for crop %d: %s", crop_id, exc)
            failed += 1
    return rescheduled, failed
