import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    # Network selection (see bikeshare.near.config.get_config)
    NEAR_ENV: str = os.getenv("NEAR_ENV", "testnet")
    BIKE_CONTRACT_NAME: str = os.getenv("BIKE_CONTRACT_NAME", "sub.bike_share.testnet")
    # The token contract is fixed per deployment for simplicity
    FT_CONTRACT_NAME: str = os.getenv("FT_CONTRACT_NAME", "my_ft.testnet")

    # Read path: per-request timeout + overall budget with limited retries
    RPC_REQUEST_TIMEOUT_SEC: float = float(os.getenv("RPC_REQUEST_TIMEOUT_SEC", "8.0"))
    RPC_CLIENT_BUDGET_SEC: float = float(os.getenv("RPC_CLIENT_BUDGET_SEC", "20.0"))
    RPC_MAX_RETRIES: int = int(os.getenv("RPC_MAX_RETRIES", "2"))

    # Write path: the wallet may wait on a human signature. 0 disables the local timeout.
    WALLET_SIGNER_URL: str = os.getenv("WALLET_SIGNER_URL", "")
    WALLET_SIGN_TIMEOUT_SEC: float = float(os.getenv("WALLET_SIGN_TIMEOUT_SEC", "0"))
    CREDENTIALS_PATH: str = os.getenv("CREDENTIALS_PATH", os.path.expanduser("~/.bikeshare/credentials.json"))
    SIGN_IN_SUCCESS_URL: str = os.getenv("SIGN_IN_SUCCESS_URL", "http://127.0.0.1:8000/signin/callback")

    # Gas (in gas units) and attached deposits (in yoctoNEAR)
    DEFAULT_FUNCTION_CALL_GAS: int = int(os.getenv("DEFAULT_FUNCTION_CALL_GAS", "30000000000000"))
    FT_CALL_GAS: int = int(os.getenv("FT_CALL_GAS", "300000000000000"))
    STORAGE_DEPOSIT_YOCTO: int = int(os.getenv("STORAGE_DEPOSIT_YOCTO", "1250000000000000000000"))
    ONE_YOCTO: int = 1

    # View projector
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:1234,http://127.0.0.1:1234")
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

    # Observability
    ENABLE_LOG_REDACTION: bool = os.getenv("ENABLE_LOG_REDACTION", "true").lower() == "true"
    METRICS_MAX_SAMPLES: int = int(os.getenv("METRICS_MAX_SAMPLES", "500"))

settings = Settings()
