from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

RANDOM_READER = "__random__"
PRIMARY = "primary"


class ServerEndpoint(BaseModel):
    """Connection details for one physical database server."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    driver: str
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[SecretStr] = None
    schemas: Tuple[str, ...] = ()
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("schemas", mode="before")
    @classmethod
    def _split_schemas(cls, value: Any) -> Any:
        # "public, audit" is accepted as shorthand for a list
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value


class LoggingConfig(BaseModel):
    """Per-datastore logger settings."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    level: str = "CRITICAL"
    trace: bool = False
    show_sql: bool = False
    show_vars: bool = False


class DatastoreConfig(BaseModel):
    """Fully resolved configuration for a single datastore."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    primary: ServerEndpoint
    readers: Dict[str, ServerEndpoint] = Field(default_factory=dict)
    default_reader: Optional[str] = None
    cache_connection: bool = True
    cache_statements: bool = True
    auto_commit: bool = True
    packages: Tuple[str, ...] = ()
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("packages", mode="before")
    @classmethod
    def _listify_packages(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @model_validator(mode="after")
    def _check_readers(self) -> "DatastoreConfig":
        if PRIMARY in self.readers:
            raise ValueError(f"Reader name '{PRIMARY}' is reserved for the primary server")
        if self.default_reader not in (None, RANDOM_READER) and self.default_reader not in self.readers:
            raise ValueError(
                f"default_reader '{self.default_reader}' is not a configured reader "
                f"(available: {sorted(self.readers)})"
            )
        return self

    def server_names(self) -> list[str]:
        """Returns 'primary' followed by the reader names."""
        return [PRIMARY, *self.readers]

    def endpoint(self, server: str) -> Optional[ServerEndpoint]:
        """Returns the endpoint registered under ``server``, or None."""
        if server == PRIMARY:
            return self.primary
        return self.readers.get(server)
