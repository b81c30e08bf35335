from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env into os.environ
load_dotenv()


class Settings(BaseSettings):
    """Library defaults backed by environment variables."""

    datastore_config_path: Optional[str] = Field(
        default=None,
        validation_alias="DATASTORE_CONFIG",
        description="Explicit datastore YAML file, searched before the per-user and global locations."
    )
    default_store: str = Field(
        default="default",
        validation_alias="DATASTORE_NAME",
        description="Datastore used when none is named and no package mapping matches."
    )
    log_level: str = Field(
        default="CRITICAL",
        validation_alias="DATASTORE_LOG_LEVEL",
        description="Default DataStoreLogger level when a datastore config does not set one."
    )
    log_json: bool = Field(
        default=False,
        validation_alias="DATASTORE_LOG_JSON",
        description="Use the JSON formatter in configure_logging()."
    )
    default_per_page: int = Field(
        default=25,
        gt=0,
        validation_alias="DATASTORE_PER_PAGE",
        description="Rows per page when pagination is requested without per_page."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


settings = Settings()
