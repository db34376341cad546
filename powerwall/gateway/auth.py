"""
Session token ownership for a gateway client.

The token lives inside a single background worker. Callers never touch it
directly: they post a request and block on a Future for the reply. Requests
are split into two queues, and the worker drains every pending mutation
(login, set-token) before it answers any read, so a read queued behind a
login always sees the post-login token.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Literal

from powerwall.obs.logging import log_event

AuthAction = Literal["login", "check_login", "set_token", "stop"]


@dataclass(frozen=True)
class Credentials:
    """Customer login for the gateway web UI (not the Tesla account password)."""
    email: str
    password: str = field(repr=False)


@dataclass
class AuthRequest:
    action: AuthAction
    token: str = ""
    reply: Future = field(default_factory=Future)


LoginFunc = Callable[[Credentials], str]


class AuthCoordinator:
    """
    Single owner of the session token.

    Args:
        login: Performs one login round-trip and returns the new token.
            Raising propagates the error to whichever caller asked for it.
        credentials: Passed to ``login`` on every login.
        logger: Destination for ``auth_*`` events.
        name: Worker thread name.
    """

    def __init__(
        self,
        login: LoginFunc,
        credentials: Credentials,
        *,
        logger: logging.Logger | None = None,
        name: str = "powerwall-auth",
    ) -> None:
        self._login = login
        self._credentials = credentials
        self._logger = logger or logging.getLogger(__name__)
        self._token = ""
        self._mutations: deque[AuthRequest] = deque()
        self._reads: deque[Future] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def __enter__(self) -> "AuthCoordinator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def ensure_logged_in(self) -> None:
        """Log in with the stored credentials unless a token is already held."""
        self._mutate(AuthRequest("check_login")).result()

    def force_login(self) -> None:
        """Log in again, replacing the current token on success."""
        self._mutate(AuthRequest("login")).result()

    def set_token(self, token: str) -> None:
        """Install ``token``; returns once reads are guaranteed to see it."""
        self._mutate(AuthRequest("set_token", token=token)).result()

    def get_token(self) -> str:
        reply: Future = Future()
        with self._cond:
            self._check_open()
            self._reads.append(reply)
            self._cond.notify()
        return reply.result()

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._mutations.append(AuthRequest("stop"))
            self._cond.notify()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("auth coordinator is closed")

    def _mutate(self, request: AuthRequest) -> Future:
        with self._cond:
            self._check_open()
            self._mutations.append(request)
            self._cond.notify()
        return request.reply

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._mutations and not self._reads:
                    self._cond.wait()
                if self._mutations:
                    request = self._mutations.popleft()
                    read = None
                else:
                    request = None
                    read = self._reads.popleft()

            if read is not None:
                read.set_result(self._token)
                continue
            if request.action == "stop":
                self._drain_closed()
                return
            self._apply(request)

    def _apply(self, request: AuthRequest) -> None:
        if request.action == "set_token":
            self._token = request.token
            log_event(self._logger, logging.DEBUG, "auth_token_set", "Set auth token")
            request.reply.set_result(None)
            return

        if request.action == "check_login" and self._token:
            request.reply.set_result(None)
            return

        try:
            self._token = self._login(self._credentials)
        except Exception as exc:
            request.reply.set_exception(exc)
        else:
            request.reply.set_result(None)

    def _drain_closed(self) -> None:
        with self._cond:
            pending_mutations = list(self._mutations)
            pending_reads = list(self._reads)
            self._mutations.clear()
            self._reads.clear()
        error = RuntimeError("auth coordinator is closed")
        for request in pending_mutations:
            request.reply.set_exception(error)
        for reply in pending_reads:
            reply.set_exception(error)
