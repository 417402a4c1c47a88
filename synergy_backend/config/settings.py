from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "NFT Synergy Backend"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Synergy search over NFT attribute collections"
    APP_AUTHOR: str = "Synergy Sort Team"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOGS_DIR: str = "logs"

    # Data layout
    DATA_DIR: str = Field(default="nft_data", description="Directory holding collected NFT data and artifacts")
    NFT_DATA_FILE: str = "all_nft_info.json"
    ATTRIBUTES_POWER_FILE: str = "attributes_power_data.json"
    SYNERGY_MAP_FILE: str = "synergy_state.json"
    SYNERGY_EXCEPTIONS_FILE: str = "synergy_exceptions.json"
    USER_STATE_FILE: str = "synergy_user_state.json"
    USER_FILES_DIR: str = "user_files"
    RESULT_FILE_PREFIX: str = "Orc_filtered"

    # Web UI
    WEB_RESULTS_LIMIT: int = 100
    WEB_DEFAULT_USER: str = "web_user"

    # Marketplace (tonapi) settings
    TONAPI_BASE_URL: str = "https://tonapi.io"
    TONAPI_KEY: str = Field(default="", description="Optional tonapi bearer key")
    ONSALE_REQUESTS_BEFORE_PAUSE: int = 5
    ONSALE_PAUSE_SECONDS: float = 3.0
    ONSALE_DELAY_SECONDS: float = 0.1
    ONSALE_MAX_RETRIES: int = 2
    ONSALE_RETRY_DELAY_SECONDS: float = 2.0
    ONSALE_TIMEOUT_SECONDS: float = 15.0
    TON_DEFAULT_DECIMALS: int = 9

    @computed_field
    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR)

    @property
    def nft_data_path(self) -> Path:
        return self.data_path / self.NFT_DATA_FILE

    @property
    def attributes_power_path(self) -> Path:
        return self.data_path / self.ATTRIBUTES_POWER_FILE

    @property
    def synergy_map_path(self) -> Path:
        return self.data_path / self.SYNERGY_MAP_FILE

    @property
    def synergy_text_path(self) -> Path:
        """Human-readable export written next to the JSON artifact."""
        return self.synergy_map_path.with_suffix(".txt")

    @property
    def synergy_exceptions_path(self) -> Path:
        return self.data_path / self.SYNERGY_EXCEPTIONS_FILE

    @property
    def user_state_path(self) -> Path:
        return self.data_path / self.USER_STATE_FILE

    @property
    def user_files_path(self) -> Path:
        return self.data_path / self.USER_FILES_DIR


settings = Settings()
