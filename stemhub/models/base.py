"""CamelModel: the base for every StemHub request and response body.

Field names stay snake_case in Python (``upstream_id``, ``stage_reviewer_id``)
and travel as camelCase on the wire (``upstreamId``, ``stageReviewerId``).
Request bodies accept either spelling.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict


def to_camel(name: str) -> str:
    """``version_stem_count`` → ``versionStemCount``."""
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class CamelModel(BaseModel):
    """camelCase aliases on the wire; surrounding whitespace stripped from strings.

    Serialize with ``model_dump(by_alias=True)`` when building a response by
    hand (e.g. a ``JSONResponse``); FastAPI does this for ``response_model``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
