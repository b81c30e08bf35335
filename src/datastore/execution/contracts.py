from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator

from datastore.common.errors import ConfigurationError, ErrorCode
from datastore.common.logger import condense_name
from datastore.common.settings import settings


class QueryOptions(BaseModel):
    """Per-call options for a query.

    Pagination is active only when ``page`` or ``per_page`` was supplied;
    the other falls back to its default.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    page: Optional[PositiveInt] = Field(default=None, description="1-indexed page to return.")
    per_page: Optional[PositiveInt] = Field(default=None, description="Rows per page.")
    server: Optional[str] = Field(default=None, description="'primary' or a reader name.")
    name: Optional[str] = Field(default=None, description="Label used in log output.")

    @field_validator("name")
    @classmethod
    def _condense(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return condense_name(value) or None

    @classmethod
    def coerce(cls, options: Union["QueryOptions", Mapping[str, Any], None]) -> "QueryOptions":
        """Accepts a QueryOptions, a plain mapping, or None."""
        if isinstance(options, QueryOptions):
            return options
        try:
            return cls.model_validate(dict(options or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid query options: {e}", ErrorCode.INVALID_OPTIONS) from e

    @property
    def paginated(self) -> bool:
        return self.page is not None or self.per_page is not None

    @property
    def effective_page(self) -> int:
        return self.page or 1

    @property
    def effective_per_page(self) -> int:
        return self.per_page or settings.default_per_page
