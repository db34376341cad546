from __future__ import annotations

import json
import logging
import ssl
import time
from functools import lru_cache
from typing import Any, Literal, TypeVar, overload
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from powerwall.config import GatewayConfig, RetryPolicy
from powerwall.gateway.auth import AuthCoordinator, Credentials
from powerwall.gateway.errors import (
    ApiError,
    AuthFailure,
    DecodeError,
    LoginError,
    PowerwallError,
    TransportError,
    classify_status,
)
from powerwall.models.auth import ErrorResponse, LoginRequest, LoginResponse
from powerwall.models.meters import MeterAggregatesData, MeterData
from powerwall.models.networks import NetworkData
from powerwall.models.site import SiteInfoData, SitemasterData, StatusData
from powerwall.models.system import (
    GridFaultData,
    GridStatusData,
    OperationData,
    ProblemsData,
    SOEData,
    SystemStatusData,
)
from powerwall.obs.diagnostics import DiagnosticsSink, LoggingDiagnosticsSink
from powerwall.obs.logging import log_event, render_body

T = TypeVar("T")

LOGIN_PATH = "login/Basic"
AUTH_COOKIE = "AuthCookie"

Method = Literal["GET", "POST"]


@lru_cache(maxsize=None)
def _type_adapter(result_type: Any) -> TypeAdapter:
    return TypeAdapter(result_type)


def _is_login_path(path: str) -> bool:
    return path.startswith("login/")


def _log_body(path: str, body: bytes | None, content_type: str) -> str:
    return render_body(body, content_type, sensitive=_is_login_path(path))


def _encode_payload(payload: Any) -> bytes:
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True).encode("utf-8")
    return json.dumps(payload).encode("utf-8")


def _salvage_token(body: str | None) -> str:
    # A login reply that fails full validation may still carry a usable token.
    if not body:
        return ""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return ""
    if isinstance(payload, dict) and isinstance(payload.get("token"), str):
        return payload["token"]
    return ""


def build_verify(config: GatewayConfig) -> ssl.SSLContext | bool:
    """
    TLS verification setting for the gateway connection.

    The gateway presents a self-signed certificate, so verification is off
    unless a previously saved certificate is supplied to pin against.
    """
    if config.tls_cert_file is None:
        return False
    context = ssl.create_default_context(cafile=str(config.tls_cert_file))
    # The certificate names a fixed host ("powerwall"), not the address we dial.
    context.check_hostname = False
    return context


class PowerwallClient:
    """
    Client for the local API of a Tesla Energy Gateway (Powerwall controller).

    Logs in on demand with the configured customer credentials, re-logs in
    once when a call is rejected with 401/403, and retries connection-level
    failures according to the configured retry policy. Safe to share
    between threads.

    Args:
        config: Gateway address, credentials, timeouts and retry policy.
        logger: Destination for ``api_*`` and ``auth_*`` events.
        diagnostics: Receives response bodies that fail to decode.
        client_id: Correlation id included in every event.
        transport: Alternative httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        logger: logging.Logger | None = None,
        diagnostics: DiagnosticsSink | None = None,
        client_id: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._diagnostics = diagnostics or LoggingDiagnosticsSink(self._logger)
        self._client_id = client_id or f"{id(self):x}"
        self._retry = config.retry_policy()
        self._client = httpx.Client(
            timeout=httpx.Timeout(config.timeout_s),
            transport=transport,
            verify=build_verify(config),
        )
        self._auth = AuthCoordinator(
            self._perform_login,
            Credentials(email=config.email, password=config.password),
            logger=self._logger,
            name=f"powerwall-auth-{self._client_id}",
        )
        self._event(
            logging.DEBUG,
            "client_created",
            "New powerwall client created",
            address=config.address,
            email=config.email,
        )

    def __enter__(self) -> "PowerwallClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def close(self) -> None:
        self._auth.close()
        self._client.close()

    def set_retry(self, interval_s: float, timeout_s: float) -> None:
        """
        Configure retries of connection-level failures.

        A timeout of zero or less disables retries. HTTP error statuses are
        never retried.
        """
        self._retry = RetryPolicy(interval_s=interval_s, timeout_s=timeout_s)
        self._event(
            logging.DEBUG,
            "client_retry_configured",
            "Configured retry settings",
            interval_s=interval_s,
            timeout_s=timeout_s,
        )

    def login(self) -> None:
        """
        Log in now, replacing any current token.

        Normally unnecessary: calls that need a session log in on demand.
        """
        self._auth.force_login()

    def get_auth_token(self) -> str:
        """Current session token ("" when not logged in), e.g. to cache between runs."""
        return self._auth.get_token()

    def set_auth_token(self, token: str) -> None:
        self._auth.set_token(token)

    def get_status(self) -> StatusData:
        # One of the few calls the gateway answers without a session.
        return self.execute("status", result_type=StatusData, ensure_login=False)

    def get_site_info(self) -> SiteInfoData:
        return self.get_json("site_info", SiteInfoData)

    def get_sitemaster(self) -> SitemasterData:
        return self.get_json("sitemaster", SitemasterData)

    def get_system_status(self) -> SystemStatusData:
        return self.get_json("system_status", SystemStatusData)

    def get_grid_faults(self) -> list[GridFaultData]:
        return self.get_json("system_status/grid_faults", list[GridFaultData])

    def get_grid_status(self) -> GridStatusData:
        return self.get_json("system_status/grid_status", GridStatusData)

    def get_soe(self) -> SOEData:
        return self.get_json("system_status/soe", SOEData)

    def get_operation(self) -> OperationData:
        return self.get_json("operation", OperationData)

    def get_problems(self) -> ProblemsData:
        return self.get_json("troubleshooting/problems", ProblemsData)

    def get_meters_aggregates(self) -> dict[str, MeterAggregatesData]:
        """Aggregated readings keyed by category ("site", "solar", "battery", "load", ...)."""
        return self.get_json("meters/aggregates", dict[str, MeterAggregatesData])

    def get_meters(self, category: str) -> list[MeterData]:
        """
        Per-meter detail for one category.

        Only "site" and "solar" are known to return data; other categories
        yield an empty list.
        """
        return self.get_json(f"meters/{quote(category, safe='')}", list[MeterData])

    def get_networks(self) -> list[NetworkData]:
        return self.get_json("networks", list[NetworkData])

    @overload
    def get_json(self, path: str, result_type: type[T]) -> T: ...

    @overload
    def get_json(self, path: str, result_type: Any) -> Any: ...

    def get_json(self, path: str, result_type: Any) -> Any:
        return self.execute(path, "GET", result_type=result_type)

    def post_json(self, path: str, payload: Any, result_type: Any = None) -> Any:
        return self.execute(path, "POST", payload, result_type=result_type)

    def execute(
        self,
        path: str,
        method: Method = "GET",
        payload: Any = None,
        *,
        result_type: Any = None,
        login_call: bool | None = None,
        ensure_login: bool = True,
    ) -> Any:
        """
        Perform one logical API call against ``https://<address>/api/<path>``.

        Non-login calls log in first if needed (unless ``ensure_login`` is
        False) and send the session token as the ``AuthCookie`` cookie. A
        401/403 triggers one re-login and one retry of the request.

        Args:
            path: API path below ``/api/``.
            method: HTTP method.
            payload: JSON body (a pydantic model or JSON-serializable value).
            result_type: Type to decode the response into; raw JSON if None.
            login_call: Treat as a login call (no cookie, no re-login).
                Defaults to True for paths under ``login/``.
            ensure_login: Log in before the call when no token is held.

        Returns:
            The decoded response body.

        Raises:
            TransportError: Connection failed and the retry policy gave up.
            AuthFailure: Still rejected with 401/403 after re-login.
            ApiError: Any other status outside 200-299.
            DecodeError: The body does not decode into ``result_type``.
        """
        if login_call is None:
            login_call = _is_login_path(path)
        url = f"https://{self._config.address}/api/{path}"
        content = None if payload is None else _encode_payload(payload)
        content_type = "application/json" if content is not None else ""

        self._event(
            logging.DEBUG,
            "api_call",
            f"Calling API: {method} {url}",
            method=method,
            url=url,
            body=_log_body(path if not login_call else LOGIN_PATH, content, content_type),
        )

        if login_call:
            response = self._send(self._build_request(method, url, content, token=""), path)
        else:
            if ensure_login:
                self._auth.ensure_logged_in()
            token = self._auth.get_token()
            response = self._send(self._build_request(method, url, content, token=token), path)
            if classify_status(response.status_code) == "auth":
                # Not logged in yet, or the token expired: log in again and retry once.
                response.close()
                self._event(
                    logging.INFO,
                    "auth_relogin",
                    f"API request returned status {response.status_code}; attempting re-auth",
                    url=url,
                    status=response.status_code,
                )
                self._auth.force_login()
                token = self._auth.get_token()
                response = self._send(self._build_request(method, url, content, token=token), path)

        return self._handle_response(path, url, response, result_type, login_call=login_call)

    def _build_request(self, method: str, url: str, content: bytes | None, *, token: str) -> httpx.Request:
        headers: dict[str, str] = {}
        if content is not None:
            headers["Content-Type"] = "application/json"
        request = self._client.build_request(
            method,
            url,
            content=content,
            headers=headers,
            extensions={"sni_hostname": self._config.server_name},
        )
        # Only the coordinator's token is sent, never cookies httpx collected from responses.
        request.headers.pop("Cookie", None)
        if token:
            request.headers["Cookie"] = f"{AUTH_COOKIE}={token}"
        return request

    def _send(self, request: httpx.Request, path: str) -> httpx.Response:
        retry = self._retry
        started = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            attempt_started = time.monotonic()
            try:
                return self._client.send(request)
            except httpx.TransportError as exc:
                elapsed = time.monotonic() - started
                if not retry.enabled or elapsed >= retry.timeout_s:
                    self._log_fail(path, type(exc).__name__, attempt)
                    raise TransportError(f"Request failed: {exc}", url=str(request.url)) from exc
                self._event(
                    logging.WARNING,
                    "http_retry",
                    f"Network error calling {path}; retrying",
                    endpoint=path,
                    attempt=attempt,
                    error=str(exc),
                )
                # Time spent in the failed attempt counts toward the interval.
                time.sleep(max(0.0, retry.interval_s - (time.monotonic() - attempt_started)))
            except httpx.RequestError as exc:
                self._log_fail(path, type(exc).__name__, attempt)
                raise TransportError(f"Request failed: {exc}", url=str(request.url)) from exc

    def _handle_response(
        self,
        path: str,
        url: str,
        response: httpx.Response,
        result_type: Any,
        *,
        login_call: bool,
    ) -> Any:
        body = response.read()
        content_type = response.headers.get("Content-Type", "")
        log_path = LOGIN_PATH if login_call else path
        status_class = classify_status(response.status_code)

        if status_class != "ok":
            self._event(
                logging.WARNING,
                "api_response",
                "Request failed",
                url=url,
                status=response.status_code,
                body=_log_body(log_path, body, content_type),
            )
            if status_class == "auth":
                raise self._auth_failure(url, response)
            raise ApiError(
                "Unexpected status",
                url=url,
                status_code=response.status_code,
                response_text=response.text,
            )

        self._event(
            logging.DEBUG,
            "api_response",
            "Request succeeded",
            url=url,
            status=response.status_code,
            body=_log_body(log_path, body, content_type),
        )
        return self._decode(path, url, response, result_type)

    @staticmethod
    def _auth_failure(url: str, response: httpx.Response) -> AuthFailure:
        try:
            info = ErrorResponse.model_validate_json(response.content)
        except ValidationError:
            info = ErrorResponse()
        return AuthFailure(
            "Authentication failed",
            url=url,
            status_code=response.status_code,
            response_text=response.text,
            error_text=info.error,
            error_message=info.message,
        )

    def _decode(self, path: str, url: str, response: httpx.Response, result_type: Any) -> Any:
        try:
            if result_type is None:
                return response.json()
            return _type_adapter(result_type).validate_json(response.content)
        except ValueError as exc:
            # pydantic's ValidationError and json.JSONDecodeError are both ValueErrors.
            shown = "(sensitive)" if _is_login_path(path) else response.text
            self._diagnostics.report(f"Error unmarshalling '{path}' response {shown}", exc)
            raise DecodeError(
                f"Error unmarshalling '{path}' response",
                url=url,
                status_code=response.status_code,
                response_text=response.text,
                endpoint=path,
            ) from exc

    def _perform_login(self, credentials: Credentials) -> str:
        self._event(logging.INFO, "auth_login", "Attempting login")
        request = LoginRequest(email=credentials.email, password=credentials.password)
        try:
            result: LoginResponse = self.execute(
                LOGIN_PATH, "POST", request, result_type=LoginResponse, login_call=True
            )
            token = result.token
        except DecodeError as exc:
            token = _salvage_token(exc.response_text)
            if not token:
                self._log_login_failed(exc)
                raise
        except PowerwallError as exc:
            self._log_login_failed(exc)
            raise

        if not token:
            self._event(
                logging.WARNING,
                "auth_login_failed",
                "Login successful but no token returned",
            )
            raise LoginError(
                "No auth token returned from login API call",
                url=f"https://{self._config.address}/api/{LOGIN_PATH}",
            )
        self._event(logging.INFO, "auth_login_ok", "Login successful")
        return token

    def _log_login_failed(self, exc: PowerwallError) -> None:
        self._event(
            logging.WARNING,
            "auth_login_failed",
            f"Login failed: {type(exc).__name__}",
            status=exc.status_code,
        )

    def _log_fail(self, endpoint: str, error_type: str, attempt: int) -> None:
        self._event(
            logging.ERROR,
            "http_fail",
            f"Request failed for {endpoint}",
            endpoint=endpoint,
            error_type=error_type,
            attempt=attempt,
        )

    def _event(self, level: int, event: str, message: str, **extra: Any) -> None:
        log_event(self._logger, level, event, message, client_id=self._client_id, **extra)
