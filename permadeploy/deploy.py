"""Deploy: upload a folder or file, then point the ArNS undername at the result.

Order of operations: validate options, resolve the deploy key, build the signer and
clients, fetch the ArNS record (fails fast on unknown names), check credits unless
paying on demand, upload with the transaction cache, persist the cache, update the
ANT record.
"""

import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from permadeploy.api.client import TurboUploadAPI
from permadeploy.api.registry import NameRegistryAPI
from permadeploy.auth.credentials import CredentialsStore
from permadeploy.auth.signer import create_signer
from permadeploy.config import APP_NAME, DEPLOY_KEY_ENV, Settings, get_settings
from permadeploy.funding import OnDemandFunding, check_credits, get_folder_size
from permadeploy.upload.cache import TransactionCache, cleanup_cache, get_cache_path, load_cache, save_cache
from permadeploy.upload.uploader import (
    ConfigurationError,
    FolderUploadError,
    UploadResult,
    upload_file,
    upload_folder,
)
from permadeploy.validators import (
    ARIO_MAINNET_PROCESS_ID,
    expand_path,
    resolve_ario_process,
    validate_ario_process,
    validate_arns_name,
    validate_file_exists,
    validate_folder_exists,
    validate_ttl,
    validate_undername,
)

log = logging.getLogger(__name__)


@dataclass
class DeployConfig:
    """Resolved deploy options (from the command line)."""

    arns_name: str
    deploy_folder: str = "./dist"
    deploy_file: Optional[str] = None  # overrides deploy_folder
    undername: str = "@"
    ttl_seconds: int = 60
    sig_type: str = "arweave"
    ario_process: str = ARIO_MAINNET_PROCESS_ID
    wallet: Optional[str] = None
    private_key: Optional[str] = None
    on_demand: Optional[str] = None
    max_token_amount: Optional[str] = None
    use_cache: bool = True
    remember_key: bool = False
    project_dir: Optional[str] = None  # where .permaweb-deploy/ lives; default cwd


@dataclass
class DeployResult:
    transaction_id: str
    arns_name: str
    undername: str
    process_id: str
    ario_process: str
    ttl_seconds: int
    total_files: int
    uploaded: int
    cache_hits: int


def _encode_key(sig_type: str, raw: str) -> str:
    """Arweave JWK JSON is passed on base64-encoded; other keys as-is (trimmed)."""
    if sig_type == "arweave":
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")
    return raw.strip()


def resolve_deploy_key(config: DeployConfig, credentials: Optional[CredentialsStore] = None) -> str:
    """Deploy key from --wallet, --private-key, DEPLOY_KEY or the keyring (first found wins)."""
    if config.wallet:
        wallet_path = expand_path(config.wallet)
        if not wallet_path.is_file():
            raise ValueError(f"Wallet file [{config.wallet}] does not exist")
        return _encode_key(config.sig_type, wallet_path.read_text(encoding="utf-8"))
    if config.private_key:
        return _encode_key(config.sig_type, config.private_key)
    env_key = os.environ.get(DEPLOY_KEY_ENV, "").strip()
    if env_key:
        log.debug("Using deploy key from %s", DEPLOY_KEY_ENV)
        return env_key
    stored = (credentials or CredentialsStore()).get_stored(config.sig_type)
    if stored:
        log.debug("Using deploy key from keyring (%s)", config.sig_type)
        return stored
    raise ValueError(
        f"{DEPLOY_KEY_ENV} environment variable not set. Use --wallet, --private-key, or set {DEPLOY_KEY_ENV}"
    )


def _record_tags() -> List[Dict[str, str]]:
    tags = [{"name": "App-Name", "value": APP_NAME}]
    git_sha = os.environ.get("GITHUB_SHA", "").strip()
    if git_sha:
        tags.append({"name": "GIT-HASH", "value": git_sha})
    return tags


def _persist_cache(cache: TransactionCache, path: Path, max_entries: int) -> None:
    """Trim and save the cache. Save errors are logged, not raised."""
    try:
        save_cache(cleanup_cache(cache, max_entries), path)
    except OSError as e:
        log.warning("Could not save transaction cache %s: %s", path, e)


def _log_progress(phase: str, current: int, total: int) -> None:
    log.debug("%s %d/%d", phase, current, total)


def run_deploy(
    config: DeployConfig,
    settings: Optional[Settings] = None,
    upload_api: Optional[Any] = None,
    registry_api: Optional[Any] = None,
    credentials: Optional[CredentialsStore] = None,
) -> DeployResult:
    """
    Run one deployment. upload_api/registry_api default to HTTP clients built from
    settings and the resolved signer. Any exception means the deploy failed; no
    partial result is returned.
    """
    settings = settings or get_settings()
    credentials = credentials or CredentialsStore()

    validate_arns_name(config.arns_name)
    validate_undername(config.undername)
    ttl_seconds = validate_ttl(str(config.ttl_seconds))
    validate_ario_process(config.ario_process)
    ario_process = resolve_ario_process(config.ario_process)

    file_path: Optional[Path] = None
    folder_path: Optional[Path] = None
    if config.deploy_file:
        validate_file_exists(config.deploy_file)
        file_path = expand_path(config.deploy_file)
        if not file_path.is_file():
            raise ConfigurationError(f"{config.deploy_file} is not a file")
    else:
        validate_folder_exists(config.deploy_folder)
        folder_path = expand_path(config.deploy_folder)

    funding_mode = OnDemandFunding.from_flags(config.on_demand, config.max_token_amount)
    deploy_key = resolve_deploy_key(config, credentials)
    signer = create_signer(config.sig_type, deploy_key)
    log.info("Signer created (%s, key %s)", config.sig_type, signer.key_id)

    if upload_api is None:
        upload_api = TurboUploadAPI(signer, settings.upload_url, settings.payment_url, timeout=settings.upload_timeout)
    if registry_api is None:
        registry_api = NameRegistryAPI(signer, settings.registry_url, ario_process)

    record = registry_api.get_record(config.arns_name)
    process_id = record["processId"]
    log.info("ArNS record fetched for %s (ANT %s)", config.arns_name, process_id)

    if funding_mode is None:
        upload_bytes = file_path.stat().st_size if file_path else get_folder_size(folder_path)
        check_credits(upload_api, upload_bytes)
    else:
        log.info("Paying on demand with %s (max %s)", funding_mode.token_type, funding_mode.max_token_amount)

    cache_path = get_cache_path(config.project_dir)
    cache = load_cache(cache_path) if config.use_cache else None

    result: UploadResult
    if file_path is not None:
        log.info("Uploading file %s", config.deploy_file)
        result = upload_file(upload_api, file_path, cache=cache, funding_mode=funding_mode)
        total_files, cache_hits = 1, int(result.cache_hit)
        uploaded = 1 - cache_hits
    else:
        log.info("Uploading folder %s", config.deploy_folder)
        try:
            folder_result = upload_folder(
                upload_api,
                folder_path,
                cache=cache,
                concurrency=settings.upload_concurrency,
                funding_mode=funding_mode,
                throw_on_failure=True,
                on_progress=_log_progress,
            )
        except FolderUploadError as e:
            # Keep what did upload so the retry only sends the failed files
            if e.updated_cache is not None:
                _persist_cache(e.updated_cache, cache_path, settings.cache_max_entries)
            raise
        result = folder_result
        total_files, uploaded, cache_hits = folder_result.total_files, folder_result.uploaded, folder_result.cache_hits

    if result.updated_cache is not None:
        _persist_cache(result.updated_cache, cache_path, settings.cache_max_entries)

    registry_api.set_record(process_id, config.undername, result.transaction_id, ttl_seconds, tags=_record_tags())
    log.info("ANT record updated: %s (%s) -> %s", config.arns_name, config.undername, result.transaction_id)

    if config.remember_key:
        credentials.set_stored(config.sig_type, deploy_key)

    return DeployResult(
        transaction_id=result.transaction_id,
        arns_name=config.arns_name,
        undername=config.undername,
        process_id=process_id,
        ario_process=ario_process,
        ttl_seconds=ttl_seconds,
        total_files=total_files,
        uploaded=uploaded,
        cache_hits=cache_hits,
    )
