from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from secrets import token_hex
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from powerwall import __version__
from powerwall.config import ConfigError, GatewayConfig, load_config
from powerwall.gateway.client import PowerwallClient
from powerwall.gateway.errors import PowerwallError
from powerwall.obs.logging import LogSettings, build_logger, log_event

EXIT_OK = 0
EXIT_GATEWAY_ERROR = 1
EXIT_USAGE_ERROR = 2

COMMANDS: dict[str, Callable[[PowerwallClient], Any]] = {
    "status": PowerwallClient.get_status,
    "site_info": PowerwallClient.get_site_info,
    "sitemaster": PowerwallClient.get_sitemaster,
    "system_status": PowerwallClient.get_system_status,
    "grid_faults": PowerwallClient.get_grid_faults,
    "grid_status": PowerwallClient.get_grid_status,
    "soe": PowerwallClient.get_soe,
    "operation": PowerwallClient.get_operation,
    "problems": PowerwallClient.get_problems,
    "aggregates": PowerwallClient.get_meters_aggregates,
    "networks": PowerwallClient.get_networks,
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query a Powerwall gateway over its local API")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--address", help="IP address or hostname of the gateway")
    parser.add_argument("--email", help="Email address to use when logging in")
    parser.add_argument("--password", help="Password to use when logging in")
    parser.add_argument("--authcache", help="File to load/store the auth token")
    parser.add_argument("--certfile", help="PEM certificate to validate the gateway against")
    parser.add_argument("--retry-interval", type=float, help="Seconds between retries on network errors")
    parser.add_argument("--retry-timeout", type=float, help="Give up retrying after this many seconds")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Logging level")
    parser.add_argument("command", choices=["login", "meter", *COMMANDS], help="API call to make")
    parser.add_argument("category", nargs="?", help="Meter category for the meter command (site, solar, ...)")
    args = parser.parse_args(argv)
    if args.command == "meter" and not args.category:
        parser.error("the meter command needs a category, e.g. site or solar")
    if args.command != "meter" and args.category is not None:
        parser.error(f"unexpected argument {args.category!r} for {args.command}")
    return args


def build_gateway_config(args: argparse.Namespace) -> tuple[GatewayConfig, dict[str, Any]]:
    """Merge the optional config file with command-line overrides."""
    gateway: dict[str, Any] = {}
    obs: dict[str, Any] = {}
    if args.config:
        app_config = load_config(Path(args.config))
        gateway = app_config.gateway.model_dump()
        obs = app_config.obs.model_dump()

    overrides = {
        "address": args.address,
        "email": args.email,
        "password": args.password,
        "tls_cert_file": args.certfile,
        "retry_interval_s": args.retry_interval,
        "retry_timeout_s": args.retry_timeout,
    }
    gateway.update({key: value for key, value in overrides.items() if value is not None})
    if "address" not in gateway:
        raise ConfigError("Gateway address is required (--address or gateway.address in --config)")
    try:
        return GatewayConfig.model_validate(gateway), obs
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def read_auth_cache(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return ""


def _jsonable(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [_jsonable(item) for item in result]
    if isinstance(result, dict):
        return {key: _jsonable(value) for key, value in result.items()}
    return result


def write_result(result: Any) -> None:
    print(json.dumps(_jsonable(result), indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    client_id = token_hex(3)

    logger = build_logger(
        LogSettings(level=args.log_level or "WARNING", client_id=client_id, log_file=None, jsonl=True)
    )

    try:
        config, obs = build_gateway_config(args)
    except ConfigError as exc:
        log_event(logger, 40, "config_invalid", str(exc))
        return EXIT_USAGE_ERROR

    if obs and not args.log_level:
        logger = build_logger(
            LogSettings(
                level=obs["log_level"],
                client_id=client_id,
                log_file=obs["log_file"],
                jsonl=obs["log_jsonl"],
            )
        )

    auth_cache = Path(args.authcache) if args.authcache else None
    try:
        cached_token = read_auth_cache(auth_cache) if auth_cache else ""
    except OSError as exc:
        log_event(logger, 40, "authcache_unreadable", f"Cannot read authcache file: {exc}")
        return EXIT_USAGE_ERROR

    with PowerwallClient(config, logger=logger, client_id=client_id) as client:
        if cached_token:
            client.set_auth_token(cached_token)
        try:
            if args.command == "login":
                client.login()
                if auth_cache is None:
                    print(client.get_auth_token())
            elif args.command == "meter":
                write_result(client.get_meters(args.category))
            else:
                write_result(COMMANDS[args.command](client))
        except PowerwallError as exc:
            log_event(logger, 40, "command_failed", str(exc), command=args.command, error_type=type(exc).__name__)
            return EXIT_GATEWAY_ERROR
        finally:
            token = client.get_auth_token()
            if auth_cache is not None and token and token != cached_token:
                auth_cache.write_text(token + "\n", encoding="utf-8")

    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
