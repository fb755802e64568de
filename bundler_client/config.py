from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BUNDLER_")

    rpc_url: str = "http://localhost:4337"
    request_timeout: float = 30.0
    dial_timeout: Optional[float] = 10.0
    log_level: str = "WARNING"


settings = Settings()
