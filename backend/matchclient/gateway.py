"""Ledger gateways.

``HttpLedgerGateway`` talks to the ledger's JSON API. ``LocalLedgerGateway``
calls an in-process ledger directly (bots, maintenance, tests). Both return
plain match dicts and raise ``LedgerRejected`` with the ledger's error code.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import LedgerRejected, LedgerUnavailable

logger = logging.getLogger(__name__)

Transport = Callable[[str, str, Optional[dict], Dict[str, str]], Tuple[int, Any]]


def urllib_transport(method: str, url: str, payload: Optional[dict], headers: Dict[str, str],
                     timeout: float = 30) -> Tuple[int, Any]:
    data = None
    headers = dict(headers)
    headers.setdefault("Accept", "application/json")
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    req = Request(url, method=method, data=data, headers=headers)
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.status, json.loads(resp.read().decode("utf-8") or "null")
    except HTTPError as exc:
        body = exc.read().decode("utf-8")
        try:
            return exc.code, json.loads(body)
        except json.JSONDecodeError:
            return exc.code, {"error": "HTTPError", "message": body}
    except (URLError, OSError) as exc:
        raise LedgerUnavailable(f"{method} {url} failed: {exc}") from exc


class HttpLedgerGateway:
    def __init__(self, base_url: str, address: str, api_key: Optional[str] = None,
                 transport: Transport = urllib_transport):
        self.base_url = base_url.rstrip("/")
        self.address = address.lower()
        self.api_key = api_key
        self.transport = transport

    def _call(self, method: str, path: str, payload: Optional[dict] = None, auth: bool = False) -> Any:
        headers = {}
        if auth:
            if not self.api_key:
                raise LedgerRejected("Unauthenticated", "an API key is required for ledger calls")
            headers["X-Address"] = self.address
            headers["Authorization"] = f"Bearer {self.api_key}"
        status, body = self.transport(method, f"{self.base_url}{path}", payload, headers)
        if status >= 500 and not (isinstance(body, dict) and body.get("error")):
            raise LedgerUnavailable(f"{method} {path} answered {status}")
        if status >= 400:
            body = body if isinstance(body, dict) else {}
            raise LedgerRejected(body.get("error", "HTTPError"), body.get("message"), status, body)
        return body

    def config(self) -> dict:
        return self._call("GET", "/api/config")

    def get_match(self, match_id: int) -> dict:
        return self._call("GET", f"/api/matches/{int(match_id)}")

    def pending_matches(self) -> List[dict]:
        return self._call("GET", "/api/matches/pending")

    def player_record(self, address: str) -> dict:
        return self._call("GET", f"/api/players/{address}")

    def create(self, difficulty: int, duration: int, value: int) -> dict:
        return self._call("POST", "/api/matches",
                          {"difficulty": difficulty, "duration": duration, "value": value}, auth=True)

    def join(self, match_id: int, value: int) -> dict:
        return self._call("POST", f"/api/matches/{int(match_id)}/join", {"value": value}, auth=True)

    def cancel(self, match_id: int) -> dict:
        return self._call("POST", f"/api/matches/{int(match_id)}/cancel", {}, auth=True)

    def cancel_expired(self, match_id: int) -> dict:
        return self._call("POST", f"/api/matches/{int(match_id)}/cancel-expired", {}, auth=True)

    def complete(self, match_id: int, winner: str) -> dict:
        return self._call("POST", f"/api/matches/{int(match_id)}/complete", {"winner": winner}, auth=True)


class LocalLedgerGateway:
    """Gateway over an in-process ``EscrowLedger``; calls run inside ``app``'s context."""

    def __init__(self, app, address: str):
        self.app = app
        self.address = address.lower()

    def _run(self, op: Callable[[Any], Any]) -> Any:
        from wagerpong.ledger import LedgerError, get_ledger
        with self.app.app_context():
            try:
                return op(get_ledger())
            except LedgerError as exc:
                raise LedgerRejected(exc.code, exc.message, exc.status, exc.to_dict()) from exc

    def config(self) -> dict:
        cfg = self.app.config
        return {
            "poll": {
                "interval": cfg.get("READY_POLL_INTERVAL_SEC", 2),
                "maxAttempts": cfg.get("READY_POLL_MAX_ATTEMPTS", 10),
                "backoff": cfg.get("READY_POLL_BACKOFF", 1.5),
            }
        }

    def get_match(self, match_id: int) -> dict:
        return self._run(lambda ledger: ledger.get_match(match_id).to_dict())

    def pending_matches(self) -> List[dict]:
        return self._run(lambda ledger: [m.to_dict() for m in ledger.pending_matches()])

    def player_record(self, address: str) -> dict:
        return self._run(lambda ledger: ledger.player_record(address).to_dict())

    def create(self, difficulty: int, duration: int, value: int) -> dict:
        return self._run(lambda ledger: ledger.create(self.address, difficulty, duration, value).to_dict())

    def join(self, match_id: int, value: int) -> dict:
        return self._run(lambda ledger: ledger.join(self.address, match_id, value).to_dict())

    def cancel(self, match_id: int) -> dict:
        return self._run(lambda ledger: ledger.cancel(self.address, match_id).to_dict())

    def cancel_expired(self, match_id: int) -> dict:
        return self._run(lambda ledger: ledger.cancel_expired(self.address, match_id).to_dict())

    def complete(self, match_id: int, winner: str) -> dict:
        return self._run(lambda ledger: ledger.complete(self.address, match_id, winner).to_dict())
