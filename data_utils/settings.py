from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings


class DatabaseSettings(BaseSettings):
    # -------------------------
    # Explicit URL (wins when set, e.g. sqlite:///nba.db for local runs)
    # -------------------------
    NBA_DB_URL: Optional[str] = Field(default=None)

    # -------------------------
    # PostgreSQL
    # -------------------------
    PGSQL_DB_HOST: str = Field(default="localhost")
    PGSQL_DB_PORT: int = Field(default=5432)
    PGSQL_DB_NAME: str = Field(default="hcp_nba")
    PGSQL_DB_USER: str = Field(default="postgres")
    PGSQL_DB_PASSWORD: str = Field(default="")

    class Config:
        # Pydantic automatically handles the priority:
        # 1. OS Environment Variables (Highest Priority - Docker overrides this)
        # 2. .env file values
        # 3. Default values (Lowest Priority)

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore" # Ignores other extra fields

    @property
    def pg_dsn(self) -> str:
        """
        Constructs a safe PostgreSQL connection string (DSN).
        Handles special characters in the password and includes the port.
        """
        # Safely encode the password to handle characters like '@', '/', ':'
        encoded_password = quote_plus(self.PGSQL_DB_PASSWORD)

        return (
            f"postgresql://{self.PGSQL_DB_USER}:{encoded_password}@"
            f"{self.PGSQL_DB_HOST}:{self.PGSQL_DB_PORT}/"
            f"{self.PGSQL_DB_NAME}"
        )

    @property
    def database_url(self) -> str:
        return self.NBA_DB_URL or self.pg_dsn
