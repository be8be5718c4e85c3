"""YouTube search settings schemas.

The request model accepts loosely typed values; invalid values are not
rejected but replaced by defaults in services.youtube_config.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class YouTubeConfigIn(BaseModel):
    """Request schema for saving search settings.

    Field names follow the stored column names. camelCase aliases are
    accepted for clients of the previous API.
    """

    max_results: Any = None
    date_range: Any = None
    region: Any = None
    video_duration: Any = None
    order: Any = None

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=lambda name: "".join(
            part if i == 0 else part.capitalize() for i, part in enumerate(name.split("_"))
        ),
    )


class YouTubeConfigOut(BaseModel):
    max_results: int
    date_range: str
    region: str
    video_duration: str
    order: str
