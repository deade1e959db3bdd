from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    API_URL: str = "https://api.switch-bot.com/v1.1"
    API_TOKEN: str = ""
    API_SECRET: str = ""
    DEVICES_FILE: str = "./data/devices.json"
    DB_URL: str = "sqlite:///./data/bridge.db"
    LOG_LEVEL: str = "INFO"
    BLE_ENABLED: bool = True
    SCAN_DURATION: float = 10.0
    VERIFY_DELAY: float = 15.0
    REQUEST_TIMEOUT: float = 15.0

    # per-device defaults, overridable in DEVICES_FILE
    REFRESH_RATE: float = 360.0
    PUSH_RATE: float = 0.1
    MAX_RETRIES: int = 1
    DELAY_BETWEEN_RETRIES: float = 3.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.API_TOKEN and self.API_SECRET)

settings = Settings()
