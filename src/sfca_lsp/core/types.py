"""
Core type definitions for sfca-lsp.

Violations are parsed straight from the scanning engine's JSON output, so the
models accept the engine's camelCase keys while exposing snake_case fields.
"""

from enum import StrEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SeverityBucket(StrEnum):
    """Editor-facing severity levels a violation severity is mapped onto."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class _EngineModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class CodeLocation(_EngineModel):
    """
    A 1-indexed location reported by an engine.

    Start is inclusive. End, when present, is inclusive of the line and
    exclusive of the column.
    """
    file: Optional[str] = None
    start_line: Optional[int] = None
    start_column: Optional[int] = None
    end_line: Optional[int] = None
    end_column: Optional[int] = None
    comment: Optional[str] = None

    @property
    def has_end(self) -> bool:
        return self.end_line is not None and self.end_column is not None


class Fix(_EngineModel):
    """Replacement code for the block of code at `location`."""
    location: CodeLocation
    fixed_code: str


class Suggestion(_EngineModel):
    """Free-form advice attached to a block of code."""
    location: CodeLocation
    message: str


class Violation(_EngineModel):
    """
    One finding from a scanning engine.

    Immutable once produced. The primary location is not validated here;
    the diagnostic factory rejects violations without a usable one.
    """
    rule: str
    engine: str
    message: str
    severity: int = Field(ge=1, le=5)
    locations: List[CodeLocation] = Field(default_factory=list)
    primary_location_index: int = 0
    tags: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    fixes: List[Fix] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)

    @property
    def primary_location(self) -> Optional[CodeLocation]:
        if 0 <= self.primary_location_index < len(self.locations):
            return self.locations[self.primary_location_index]
        return None
