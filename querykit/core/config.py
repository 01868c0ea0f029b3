from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    QUERY_DEFAULT_LIMIT: int = 10
    QUERY_MAX_LIMIT: int = 0  # 0 disables the upper bound
    QUERY_DEFAULT_SORT_BY: str = "createdAt"
    QUERY_DEFAULT_SORT_ORDER: str = "desc"  # asc | desc
    QUERY_DEEP_PATH_POLICY: str = "ignore"  # ignore | reject

    @property
    def max_limit(self) -> int | None:
        return self.QUERY_MAX_LIMIT if self.QUERY_MAX_LIMIT > 0 else None

settings = Settings()
