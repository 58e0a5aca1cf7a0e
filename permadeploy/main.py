"""Entry point: command line (deploy, hash, cache, key) and logging setup."""

import argparse
import logging
import sys
from typing import List, Optional

from permadeploy import __version__
from permadeploy.auth.credentials import CredentialsStore
from permadeploy.auth.signer import SIGNER_TOKENS
from permadeploy.config import Settings, get_settings
from permadeploy.deploy import DeployConfig, run_deploy
from permadeploy.funding import ON_DEMAND_TOKENS
from permadeploy.upload.cache import cleanup_cache, get_cache_path, load_cache, save_cache
from permadeploy.upload.hashing import hash_file, hash_folder
from permadeploy.validators import expand_path, validate_ttl

log = logging.getLogger("permadeploy.main")


def setup_logging(level: str = "INFO", log_file: str = "") -> None:
    """Configure the permadeploy logger (stderr always; optional file)."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("permadeploy")
    root.setLevel(numeric)
    root.handlers.clear()
    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(numeric)
    sh.setFormatter(fmt)
    root.addHandler(sh)
    if log_file and log_file.strip():
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(numeric)
            fh.setFormatter(fmt)
            root.addHandler(fh)
            root.info("Logging to file %s", log_file)
        except OSError as e:
            root.warning("Could not open log file %s: %s", log_file, e)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permadeploy",
        description="Deploy a site to the permaweb and point an ArNS name at it",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Upload and update the ArNS record")
    deploy.add_argument("-n", "--arns-name", required=True, help="The ArNS name to deploy to")
    deploy.add_argument("-d", "--deploy-folder", default="./dist", help="Folder to deploy (default ./dist)")
    deploy.add_argument("-f", "--deploy-file", help="File to deploy (overrides --deploy-folder)")
    deploy.add_argument("-u", "--undername", default="@", help="ANT undername to update (default @)")
    deploy.add_argument("-t", "--ttl-seconds", default="60", help="ArNS TTL in seconds (60-86400)")
    deploy.add_argument("-s", "--sig-type", default="arweave", choices=sorted(SIGNER_TOKENS), help="Signer type")
    key = deploy.add_mutually_exclusive_group()
    key.add_argument("-w", "--wallet", help="Path to wallet file (JWK for Arweave, private key for others)")
    key.add_argument("-k", "--private-key", help="Private key or JWK JSON string (alternative to --wallet)")
    deploy.add_argument(
        "-p", "--ario-process", default="mainnet",
        help="The ARIO process to use (mainnet, testnet, or process ID)",
    )
    deploy.add_argument("--on-demand", choices=ON_DEMAND_TOKENS, help="Pay for the upload with this token")
    deploy.add_argument("--max-token-amount", help="Maximum token amount for on-demand payment")
    deploy.add_argument("--no-cache", action="store_true", help="Upload every file, ignore the transaction cache")
    deploy.add_argument("--remember-key", action="store_true", help="Store the deploy key in the OS keyring")
    deploy.add_argument("--project-dir", help="Directory holding .permaweb-deploy/ (default: current directory)")

    hash_cmd = sub.add_parser("hash", help="Print the content hash of a file or folder")
    hash_cmd.add_argument("path")

    cache = sub.add_parser("cache", help="Maintain the transaction cache")
    cache.add_argument("action", choices=("prune", "clear"))
    cache.add_argument("--max-entries", type=int, help="Entries to keep when pruning (default from settings)")
    cache.add_argument("--project-dir", help="Directory holding .permaweb-deploy/ (default: current directory)")

    key_cmd = sub.add_parser("key", help="Manage the deploy key stored in the OS keyring")
    key_cmd.add_argument("action", choices=("clear",))
    key_cmd.add_argument("-s", "--sig-type", default="arweave", choices=sorted(SIGNER_TOKENS), help="Signer type")
    return parser


def cmd_deploy(args: argparse.Namespace, settings: Settings) -> int:
    config = DeployConfig(
        arns_name=args.arns_name,
        deploy_folder=args.deploy_folder,
        deploy_file=args.deploy_file,
        undername=args.undername,
        ttl_seconds=validate_ttl(args.ttl_seconds),
        sig_type=args.sig_type,
        ario_process=args.ario_process,
        wallet=args.wallet,
        private_key=args.private_key,
        on_demand=args.on_demand,
        max_token_amount=args.max_token_amount,
        use_cache=not args.no_cache,
        remember_key=args.remember_key,
        project_dir=args.project_dir,
    )
    result = run_deploy(config, settings)
    print(f"Tx ID:        {result.transaction_id}")
    print(f"ArNS Name:    {result.arns_name}")
    print(f"Undername:    {result.undername}")
    print(f"ANT:          {result.process_id}")
    print(f"ARIO Process: {result.ario_process}")
    print(f"TTL Seconds:  {result.ttl_seconds}")
    print(f"Files:        {result.total_files} ({result.uploaded} uploaded, {result.cache_hits} cached)")
    return 0


def cmd_hash(args: argparse.Namespace) -> int:
    path = expand_path(args.path)
    if path.is_dir():
        print(hash_folder(path))
    elif path.is_file():
        print(hash_file(path))
    else:
        log.error("No such file or folder: %s", args.path)
        return 1
    return 0


def cmd_cache(args: argparse.Namespace, settings: Settings) -> int:
    path = get_cache_path(args.project_dir)
    if args.action == "clear":
        save_cache({}, path)
        log.info("Cleared transaction cache %s", path)
        return 0
    max_entries = args.max_entries if args.max_entries is not None else settings.cache_max_entries
    cache = load_cache(path)
    pruned = cleanup_cache(cache, max_entries)
    if pruned is not cache:
        save_cache(pruned, path)
    print(f"{len(pruned)} entries kept, {len(cache) - len(pruned)} removed ({path})")
    return 0


def cmd_key(args: argparse.Namespace) -> int:
    CredentialsStore().clear_stored(args.sig_type)
    log.info("Removed stored deploy key for %s", args.sig_type)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level, settings.log_file)
    try:
        if args.command == "deploy":
            return cmd_deploy(args, settings)
        if args.command == "hash":
            return cmd_hash(args)
        if args.command == "key":
            return cmd_key(args)
        return cmd_cache(args, settings)
    except KeyboardInterrupt:
        log.warning("Deployment cancelled")
        return 130
    except Exception as e:
        log.error("%s failed: %s", args.command.capitalize(), e)
        log.debug("Traceback", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
