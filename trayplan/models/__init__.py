from trayplan.models.crop import Crop, Recipe
from trayplan.models.task import CropTask
from trayplan.models.logs import NotificationLog, PipelineRun

__all__ = [
    "Recipe",
    "Crop",
    "CropTask",
    "PipelineRun",
    "NotificationLog",
]
