"""Configuration from environment (no hardcoded secrets)."""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Tag value sent with every upload and record update
APP_NAME = "Permaweb-Deploy"

# Transaction cache lives in the project being deployed: <project>/.permaweb-deploy/transaction-cache.json
CACHE_DIR = ".permaweb-deploy"
CACHE_FILE = "transaction-cache.json"

# Environment variable holding the deploy key when neither --wallet nor --private-key is given
DEPLOY_KEY_ENV = "DEPLOY_KEY"


class Settings(BaseSettings):
    """
    Deploy settings from env (PERMADEPLOY_*).

    Requests to the upload, payment and registry URLs are authenticated with this
    tool's own HMAC headers (x-key-id, x-nonce, x-signature; see auth.signer), not
    with the signed data items the public ar.io/ArDrive services expect. The default
    URLs name those services, but deploys only succeed against a gateway that
    accepts the HMAC headers; point PERMADEPLOY_UPLOAD_URL, PERMADEPLOY_PAYMENT_URL
    and PERMADEPLOY_REGISTRY_URL at one.
    """

    model_config = SettingsConfigDict(env_prefix="PERMADEPLOY_", extra="ignore")

    # Services
    upload_url: str = "https://upload.ardrive.io"
    payment_url: str = "https://payment.ardrive.io"
    registry_url: str = "https://arns.ar.io"

    # Transaction cache: entries kept after cleanup (least recently used dropped first)
    cache_max_entries: int = 10000

    # Uploads: in-flight file uploads per folder, per-request timeout in seconds
    upload_concurrency: int = 10
    upload_timeout: float = 600.0

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
