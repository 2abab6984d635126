"""
License Manager command line

    licensemanager init                      generate keys and a configuration file
    licensemanager device-id                 print this machine's device id
    licensemanager issue ...                 issue a license token
    licensemanager verify offline|online|dual
    licensemanager token create|revoke|list
    licensemanager serve                     run the license server

Exit status: 0 on success, 1 on a license or verification error, 2 on a
usage or configuration error.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from licensemanager.core.config_manager import ConfigManager, SystemConfig
from licensemanager.custom_logging import LOG_CONTEXT_HOLDER, setup_logging
from licensemanager.errors import ConfigurationError, LicenseManagerError
from licensemanager.key_manager import KeyManager
from licensemanager.license_codec import issue_license, load_license_from_file, normalize_token
from licensemanager.license_models import LicenseRecord, LicenseType, parse_expiry_date
from licensemanager.license_server import create_app, serve_forever
from licensemanager.license_storage import LicenseStorage
from licensemanager.output import get_formatter
from licensemanager.security.hardware_fingerprint import get_device_id
from licensemanager.security.license_validator import (
    DualVerifier, OfflineVerifier, OnlineConfig, OnlineVerifier, verify
)
from licensemanager.security.signing import RSA_KEY_SIZE
from licensemanager.token_auth import TokenType, create_token

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_LICENSE_ERROR = 1
EXIT_USAGE_ERROR = 2


class CommandContext:
    """Configuration and helpers shared by the command handlers"""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.config_manager = ConfigManager(args.config)
        self.config: SystemConfig = self.config_manager.load_config()
        self.formatter = get_formatter(args.format)

    def key_manager(self) -> KeyManager:
        return KeyManager(self.config.keys, resolve=self.config_manager.resolve_path)

    def storage(self) -> LicenseStorage:
        return LicenseStorage(self.config_manager.resolve_path(self.config.server.database))

    def online_config(self) -> OnlineConfig:
        online = self.config.online
        return OnlineConfig(
            api_url=online.api_url,
            app_id=online.app_id,
            timeout=online.timeout,
            retries=online.retries,
            api_token=online.api_token
        )


def _read_token(args: argparse.Namespace) -> str:
    if args.token:
        return normalize_token(args.token)
    if args.license:
        return load_license_from_file(args.license)
    raise ConfigurationError("either --license or --token is required")


def cmd_init(ctx: CommandContext) -> int:
    keys_dir = Path(ctx.args.keys_dir) if ctx.args.keys_dir else ctx.config_manager.resolve_path("keys")
    ctx.config.keys = KeyManager.generate_key_files(
        keys_dir, overwrite=ctx.args.overwrite, key_size=ctx.args.key_size
    )
    ctx.config_manager.save_config(ctx.config)
    ctx.formatter.print({
        "config_file": ctx.config_manager.config_file,
        "private_key": ctx.config.keys.private_key,
        "public_key": ctx.config.keys.public_key,
        "aes_key": ctx.config.keys.aes_key,
    })
    return EXIT_OK


def cmd_device_id(ctx: CommandContext) -> int:
    ctx.formatter.print({"device_id": get_device_id()})
    return EXIT_OK


def cmd_issue(ctx: CommandContext) -> int:
    args = ctx.args
    keys = ctx.key_manager().load_issuer_keys()
    device_id = args.device_id or get_device_id()

    try:
        expiry_date = parse_expiry_date(args.expiry)
    except ValueError as e:
        raise ConfigurationError(f"invalid expiry date {args.expiry!r}: {e}") from e

    token = issue_license(
        device_id=device_id,
        license_type=LicenseType(args.type),
        expiry_date=expiry_date,
        features=args.feature,
        signing_key=keys.signing_key,
        symmetric_key=keys.symmetric_key
    )

    if args.output:
        Path(args.output).write_text(token + "\n", encoding="utf-8")

    result = {
        "device_id": device_id,
        "license_type": args.type,
        "expiry_date": expiry_date,
        "features": args.feature,
        "output": args.output,
    }

    if args.store:
        storage = ctx.storage()
        try:
            result["record_id"] = storage.save_license(LicenseRecord(
                device_id=device_id,
                license_key=token,
                license_type=args.type,
                expiry_date=expiry_date
            ))
        finally:
            storage.close()

    if not args.output:
        result["token"] = token
    ctx.formatter.print(result)
    return EXIT_OK


def cmd_verify(ctx: CommandContext) -> int:
    args = ctx.args
    device_id = args.device_id or get_device_id()

    if args.mode == "online":
        verifier = OnlineVerifier(ctx.online_config())
        token = None
    else:
        keys = ctx.key_manager().load_verifier_keys()
        offline = OfflineVerifier(keys.verification_key, keys.symmetric_key)
        token = _read_token(args)
        verifier = offline if args.mode == "offline" else DualVerifier(
            offline, OnlineVerifier(ctx.online_config())
        )

    result = verify(verifier, device_id, token)
    ctx.formatter.print(result)
    if not result.valid or result.expired:
        code = "EXPIRED_LICENSE" if result.expired else "INVALID_LICENSE"
        print(f"Error [{code}]: {result.message or 'license not valid'}", file=sys.stderr)
        return EXIT_LICENSE_ERROR
    return EXIT_OK


def cmd_token_create(ctx: CommandContext) -> int:
    args = ctx.args
    if args.days < 0:
        raise ConfigurationError("--days must not be negative")
    if args.type == TokenType.CLIENT.value and not args.app_id:
        raise ConfigurationError("client tokens require --app-id")

    storage = ctx.storage()
    try:
        record = create_token(storage, TokenType(args.type), app_id=args.app_id or "", days=args.days)
    finally:
        storage.close()
    ctx.formatter.print(record)
    return EXIT_OK


def cmd_token_revoke(ctx: CommandContext) -> int:
    storage = ctx.storage()
    try:
        revoked = storage.revoke_token(ctx.args.token)
    finally:
        storage.close()
    if not revoked:
        raise ConfigurationError("token not found")
    ctx.formatter.print({"token": f"{ctx.args.token[:8]}...", "revoked": True})
    return EXIT_OK


def cmd_token_list(ctx: CommandContext) -> int:
    storage = ctx.storage()
    try:
        records = storage.list_tokens(limit=ctx.args.limit, offset=ctx.args.offset)
    finally:
        storage.close()
    for record in records:
        record.token = f"{record.token[:8]}..."
    ctx.formatter.print(records)
    return EXIT_OK


def cmd_serve(ctx: CommandContext) -> int:
    settings = ctx.config.server
    host = ctx.args.host or settings.host
    port = ctx.args.port if ctx.args.port is not None else settings.port

    storage = ctx.storage()
    try:
        serve_forever(create_app(storage, require_token=settings.require_token), host, port)
    finally:
        storage.close()
    logger.info("License server stopped")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="licensemanager", description="Device-bound license issuing and verification")
    parser.add_argument("--config", help="configuration file (default: $LICENSEMANAGER_CONFIG or licensemanager.json)")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="output format")
    parser.add_argument("--log-level", help="override the configured log level")
    parser.add_argument("--log-json", action="store_true", help="emit JSON log lines")

    sub = parser.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init", help="generate key files and write the configuration")
    init.add_argument("--keys-dir", help="directory for the key files (default: keys/ next to the config)")
    init.add_argument("--overwrite", action="store_true", help="replace existing key files")
    init.add_argument("--key-size", type=int, default=RSA_KEY_SIZE, help=argparse.SUPPRESS)
    init.set_defaults(func=cmd_init)

    device = sub.add_parser("device-id", help="print the device id of this machine")
    device.set_defaults(func=cmd_device_id)

    issue = sub.add_parser("issue", help="issue a license token")
    issue.add_argument("--device-id", help="target device (default: this machine)")
    issue.add_argument("--type", choices=[t.value for t in LicenseType], default=LicenseType.OFFLINE.value)
    issue.add_argument("--expiry", required=True, help="YYYY-MM-DD or ISO 8601 timestamp")
    issue.add_argument("--feature", action="append", default=[], help="feature name (repeatable)")
    issue.add_argument("--output", help="write the token to this file")
    issue.add_argument("--store", action="store_true", help="record the license in the server database")
    issue.set_defaults(func=cmd_issue)

    verify_cmd = sub.add_parser("verify", help="verify a license")
    verify_cmd.add_argument("mode", choices=["offline", "online", "dual"])
    verify_cmd.add_argument("--device-id", help="device to verify for (default: this machine)")
    verify_cmd.add_argument("--license", help="license file")
    verify_cmd.add_argument("--token", help="license token text")
    verify_cmd.set_defaults(func=cmd_verify)

    token = sub.add_parser("token", help="manage API tokens")
    token_sub = token.add_subparsers(dest="token_cmd", required=True)

    create = token_sub.add_parser("create", help="create an API token")
    create.add_argument("--type", choices=[t.value for t in TokenType], default=TokenType.CLIENT.value)
    create.add_argument("--app-id", help="application id (required for client tokens)")
    create.add_argument("--days", type=int, default=0, help="days of validity (0: never expires)")
    create.set_defaults(func=cmd_token_create)

    revoke = token_sub.add_parser("revoke", help="revoke an API token")
    revoke.add_argument("token")
    revoke.set_defaults(func=cmd_token_revoke)

    list_cmd = token_sub.add_parser("list", help="list API tokens")
    list_cmd.add_argument("--limit", type=int, default=100)
    list_cmd.add_argument("--offset", type=int, default=0)
    list_cmd.set_defaults(func=cmd_token_list)

    serve = sub.add_parser("serve", help="run the license server")
    serve.add_argument("--host", help="bind address (default: from configuration)")
    serve.add_argument("--port", type=int, help="port (default: from configuration)")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        ctx = CommandContext(args)
    except ConfigurationError as e:
        print(f"Error [{e.code}]: {e}", file=sys.stderr)
        return EXIT_USAGE_ERROR

    log_settings = ctx.config.logging
    setup_logging(
        level=args.log_level or log_settings.level,
        json_format=args.log_json or log_settings.json_format,
        log_file=log_settings.log_file
    )
    LOG_CONTEXT_HOLDER["command"] = args.cmd
    LOG_CONTEXT_HOLDER["app_id"] = ctx.config.online.app_id

    try:
        return args.func(ctx)
    except ConfigurationError as e:
        print(f"Error [{e.code}]: {e}", file=sys.stderr)
        return EXIT_USAGE_ERROR
    except LicenseManagerError as e:
        if e.result is not None:
            ctx.formatter.print(e.result)
        print(f"Error [{e.code}]: {e}", file=sys.stderr)
        return EXIT_LICENSE_ERROR


if __name__ == "__main__":
    sys.exit(main())
