"""URL schemas.

UrlSummary and AdminForm are plain dataclasses passed between the repository,
service and template layers. DebugVars is the Pydantic model served on
/_debug/vars.
"""

from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class UrlSummary:
    """One row of the admin listing."""

    name: str
    url: str
    hits: int


@dataclass(frozen=True)
class AdminForm:
    """A validated admin form submission."""

    name: str
    url: str
    user: str


class DebugVars(BaseModel):
    """Build metadata and the non-secret part of the configuration."""

    gitrev: str
    revdate: str
    config: dict[str, object]
