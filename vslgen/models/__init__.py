from vslgen.models.base import Base
from vslgen.models.campaign import Campaign
from vslgen.models.generated_video import GeneratedVideo
from vslgen.models.lead import Lead

__all__ = [
    "Base",
    "Campaign",
    "Lead",
    "GeneratedVideo",
]
