from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "precast-lifecycle"

    # ---------------------------------------------------------------------
    # API contract / OpenAPI
    # ---------------------------------------------------------------------

    api_version: str = "1.0.0"
    api_description: str = (
        "Precast element lifecycle API.\n\n"
        "Tracks elements through production (rebar, cast, curing), cast lots "
        "with a pre-pour checklist, and truck deliveries driven by QR scans.\n\n"
        "Write endpoints are headers-first. Required headers: X-Role, X-Actor-User-Id."
    )

    env: str = "local"
    debug: bool = True

    db_host: str = "127.0.0.1"
    db_port: int = 5432
    db_name: str = "precast"
    db_user: str = "precast"
    db_password: str = "precast"

    # Full SQLAlchemy URL; wins over the db_* fields when set.
    database_url_override: str | None = None

    # Tests run against an in-memory SQLite database unless pointed elsewhere.
    test_database_url: str = "sqlite+pysqlite:///:memory:"

    # ---------------------------------------------------------------------
    # Domain
    # ---------------------------------------------------------------------

    # "en" or "is" (Icelandic); selects the error message catalog.
    locale: str = "en"

    batch_number_prefix: str = "LOT"
    batch_number_attempts: int = 5

    notifications_enabled: bool = True

    # ---------------------------------------------------------------------
    # Logging
    # ---------------------------------------------------------------------

    json_logs: bool = False
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
