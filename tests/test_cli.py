import json
import logging
from pathlib import Path

import httpx
import pytest

import powerwall.__main__ as cli
from powerwall.gateway.client import PowerwallClient


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger("powerwall")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def _gateway(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/login/Basic":
        return httpx.Response(200, json={"token": "fresh-token"})
    if request.url.path == "/api/system_status/soe":
        if request.headers.get("cookie") not in ("AuthCookie=fresh-token", "AuthCookie=cached-token"):
            return httpx.Response(401, json={"code": 401, "error": "Unauthorized", "message": "Login Required"})
        return httpx.Response(200, json={"percentage": 64.25})
    if request.url.path == "/api/meters/aggregates":
        return httpx.Response(200, json={"site": {"instant_power": -120.5, "num_meters_aggregated": 1}})
    if request.url.path == "/api/meters/solar":
        return httpx.Response(200, json=[{"id": 1, "location": "solar", "Cached_readings": {"instant_power": 2100}}])
    return httpx.Response(404, text="not found")


@pytest.fixture
def mock_gateway(monkeypatch: pytest.MonkeyPatch) -> None:
    def factory(config, **kwargs):
        return PowerwallClient(config, transport=httpx.MockTransport(_gateway), **kwargs)

    monkeypatch.setattr(cli, "PowerwallClient", factory)


def test_parse_args() -> None:
    args = cli.parse_args(["--address", "gw.local", "--retry-timeout", "5", "soe"])

    assert args.command == "soe"
    assert args.address == "gw.local"
    assert args.retry_timeout == 5.0


def test_parse_args_rejects_unknown_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--address", "gw.local", "reboot"])


def test_missing_address_is_usage_error() -> None:
    assert cli.main(["soe"]) == cli.EXIT_USAGE_ERROR


def test_command_prints_json(mock_gateway: None, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--address", "gw.local", "--email", "e@example.com", "--password", "pw", "soe"])

    assert code == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out) == {"percentage": 64.25}


def test_login_prints_token(mock_gateway: None, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--address", "gw.local", "--email", "e@example.com", "--password", "pw", "login"])

    assert code == cli.EXIT_OK
    assert capsys.readouterr().out.strip() == "fresh-token"


def test_authcache_round_trip(mock_gateway: None, tmp_path: Path) -> None:
    cache = tmp_path / "token"
    args = ["--address", "gw.local", "--email", "e@example.com", "--password", "pw", "--authcache", str(cache)]

    assert cli.main([*args, "soe"]) == cli.EXIT_OK
    assert cache.read_text(encoding="utf-8").strip() == "fresh-token"

    cache.write_text("cached-token\n", encoding="utf-8")
    assert cli.main([*args, "soe"]) == cli.EXIT_OK
    assert cache.read_text(encoding="utf-8").strip() == "cached-token"


def test_gateway_error_exit_code(mock_gateway: None) -> None:
    assert cli.main(["--address", "gw.local", "--email", "e@example.com", "problems"]) == cli.EXIT_GATEWAY_ERROR


def test_config_file_merged_with_flags(mock_gateway: None, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "gateway:\n  address: 10.0.0.9\n  email: e@example.com\n  password: pw\nobs:\n  log_level: ERROR\n",
        encoding="utf-8",
    )

    code = cli.main(["--config", str(config_path), "--retry-timeout", "1", "soe"])

    assert code == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out) == {"percentage": 64.25}


def test_parse_args_log_level_is_case_insensitive() -> None:
    assert cli.parse_args(["--log-level", "debug", "soe"]).log_level == "DEBUG"


@pytest.mark.parametrize(
    "argv",
    [
        ["--log-level", "bogus", "soe"],
        ["meter"],
        ["soe", "site"],
    ],
)
def test_parse_args_usage_errors(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(argv)

    assert exc_info.value.code == cli.EXIT_USAGE_ERROR


def test_aggregates_command(mock_gateway: None, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--address", "gw.local", "--email", "e@example.com", "--password", "pw", "aggregates"])

    assert code == cli.EXIT_OK
    output = json.loads(capsys.readouterr().out)
    assert output["site"]["instant_power"] == -120.5
    assert output["site"]["num_meters_aggregated"] == 1
    assert output["site"]["last_communication_time"] is None


def test_meter_command(mock_gateway: None, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--address", "gw.local", "--email", "e@example.com", "--password", "pw", "meter", "solar"])

    assert code == cli.EXIT_OK
    output = json.loads(capsys.readouterr().out)
    assert output[0]["location"] == "solar"
    assert output[0]["cached_readings"]["instant_power"] == 2100
