"""Application configuration and environment settings"""
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class LedgerSettings(BaseModel):
    """Ledger connection settings"""
    provider_url: str = Field(..., description="JSON-RPC endpoint")
    contract_address: Optional[str] = Field(None, description="Record contract address")
    private_key: Optional[str] = Field(None, description="Signer private key")
    gas_limit_fallback: int = Field(2_000_000, description="Gas limit when estimation fails")
    gas_buffer: float = Field(1.2, description="Multiplier applied to estimated gas")

class RelayerSettings(BaseModel):
    """Encryption relayer settings"""
    url: Optional[str] = Field(None, description="Relayer base URL")
    api_key: Optional[str] = Field(None, description="Relayer API key")
    retries: int = Field(3, description="Attempts per relayer request")

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Ledger settings
    WEB3_PROVIDER_URL: str = Field("http://127.0.0.1:8545", description="JSON-RPC endpoint of the ledger")
    CONTRACT_ADDRESS: Optional[str] = Field(None, description="Address of the record contract")
    SIGNER_PRIVATE_KEY: Optional[str] = Field(None, description="Private key used to sign ledger writes")
    GAS_LIMIT_FALLBACK: int = Field(2_000_000, description="Gas limit used when estimation fails")
    GAS_BUFFER: float = Field(1.2, description="Multiplier applied to estimated gas")

    # Encryption relayer settings
    RELAYER_URL: Optional[str] = Field(None, description="Base URL of the encryption relayer")
    RELAYER_API_KEY: Optional[str] = Field(None, description="Encryption relayer API key")
    RELAYER_RETRIES: int = Field(3, description="Attempts per relayer request")

    # Notification timings (seconds)
    SUCCESS_HIDE_DELAY: float = 2.0
    ERROR_HIDE_DELAY: float = 3.0

    # Record settings
    RECORD_ID_PREFIX: str = Field("social", description="Category prefix of generated record ids")
    LEADERBOARD_SIZE: int = 5

    # Entry point settings
    ACTION: str = Field("refresh", description="One of refresh, submit, decrypt, check")
    RECORD_NAME: Optional[str] = Field(None, description="Data type of the record to submit")
    RECORD_VALUE: Optional[str] = Field(None, description="Raw value of the record to submit")
    RECORD_DESCRIPTION: str = Field("", description="Description of the record to submit")
    RECORD_ID: Optional[str] = Field(None, description="Record to decrypt")
    AUTO_APPROVE: bool = Field(False, description="Sign transactions without prompting")
    OUTPUT_DIR: str = Field("/output", description="Directory for output files")

    @property
    def ledger_settings(self) -> LedgerSettings:
        """Get ledger settings as a separate model"""
        return LedgerSettings(
            provider_url=self.WEB3_PROVIDER_URL,
            contract_address=self.CONTRACT_ADDRESS,
            private_key=self.SIGNER_PRIVATE_KEY,
            gas_limit_fallback=self.GAS_LIMIT_FALLBACK,
            gas_buffer=self.GAS_BUFFER
        )

    @property
    def relayer_settings(self) -> RelayerSettings:
        """Get relayer settings as a separate model"""
        return RelayerSettings(
            url=self.RELAYER_URL,
            api_key=self.RELAYER_API_KEY,
            retries=self.RELAYER_RETRIES
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True
    )

settings = Settings()
