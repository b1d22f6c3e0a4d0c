from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration, read from the environment (or .env) by field name.

    DATABASE_URL may hold a password and is never published; see
    ``public_vars``. DB_SCHEMA moves every table into a named schema.
    Behind a reverse proxy, REAL_IP_HEADER names the header carrying the client
    address and REMOTE_USER_HEADER the one carrying the authenticated user.
    Without a user header every request acts as STATIC_USER.
    """

    # SQLAlchemy URL; asyncpg in production, aiosqlite in tests
    database_url: str = "postgresql+asyncpg://urlredir@localhost:5432/urlredir"
    # Optional schema; every statement is translated to it
    db_schema: str = ""

    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600
    db_pool_pre_ping: bool = True
    db_echo: bool = False

    # Listen address
    host: str = "127.0.0.1"
    port: int = 8080

    # Name of the header where the reverse proxy supplies the client IP
    real_ip_header: str = ""
    # Name of the header where the reverse proxy supplies the user name.
    # When empty, static_user is used for every request.
    remote_user_header: str = ""
    static_user: str = "test"

    # Set by the build process
    git_rev: str = ""
    rev_date: str = "0001-01-01T00:00:00+00:00"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def public_vars(self) -> dict[str, object]:
        """Configuration safe to publish; the database URL may carry a password."""
        return self.model_dump(
            include={"db_schema", "host", "port", "real_ip_header", "remote_user_header"}
        )
