"""HTTP client for the remote Cardiac Trader game service.

All game logic (pricing, round timing authority, settlement, tool unlocks)
lives behind this client. Calls raise :class:`BackendError` for rejected
requests and :class:`TransientNetworkFailure` for anything worth retrying.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from cardiac_trader.errors import BackendError, TransientNetworkFailure
from .dto import (
    DIFFICULTY_LEVELS,
    GameSession,
    GameSummary,
    HintResult,
    Portfolio,
    RoundResult,
    RoundStartInfo,
    Stock,
    TimeBoostResult,
    ToolAvailability,
    TradeResult,
)

logger = logging.getLogger(__name__)


class BackendAPI:
    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({'Content-Type': 'application/json'})

    @classmethod
    def from_config(cls, config) -> 'BackendAPI':
        return cls(
            config.get('BACKEND_API_URL', 'http://localhost:8080/api'),
            timeout=float(config.get('BACKEND_TIMEOUT_SEC', 10)),
        )

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                 json: Any = None, allow_404: bool = False) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, params=params, json=json, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning(f"[backend-unreachable] {method} {path}: {exc}")
            raise TransientNetworkFailure(f"Game service unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise BackendError(f"Request to game service failed: {exc}") from exc

        if allow_404 and response.status_code == 404:
            return None
        if response.status_code >= 500:
            logger.warning(f"[backend-error] {method} {path} status={response.status_code}")
            raise TransientNetworkFailure(_error_message(response), status_code=response.status_code)
        if response.status_code >= 400:
            raise BackendError(_error_message(response), status_code=response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON from game service for {path}", status_code=response.status_code) from exc

    # ---- Game ----
    def start_new_game(self, user_id: str, difficulty: Optional[str] = None) -> GameSession:
        difficulty = (difficulty or 'MEDIUM').upper()
        if difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f"Unknown difficulty {difficulty!r}")
        data = self._request('POST', '/game/start', params={'userId': user_id, 'difficulty': difficulty})
        return _parse(GameSession, data, '/game/start')

    def get_current_session(self, user_id: str) -> Optional[GameSession]:
        data = self._request('GET', '/game/session', params={'userId': user_id}, allow_404=True)
        return _parse(GameSession, data, '/game/session') if data else None

    def start_round(self, session_id: str) -> RoundStartInfo:
        data = self._request('POST', '/game/round/start', params={'sessionId': session_id})
        return _parse(RoundStartInfo, data, '/game/round/start')

    def complete_round(self, session_id: str, round_number: int) -> RoundResult:
        data = self._request(
            'POST', '/game/round/complete',
            params={'sessionId': session_id, 'roundNumber': round_number},
        )
        return _parse(RoundResult, data, '/game/round/complete')

    def fetch_game_summary(self, session_id: str) -> GameSummary:
        data = self._request('GET', '/game/summary', params={'sessionId': session_id})
        return _parse(GameSummary, data, '/game/summary')

    # ---- Trading ----
    def buy_stock(self, session_id: str, stock_id: str, shares: int) -> TradeResult:
        return self._trade('/trading/buy', session_id, stock_id, shares)

    def sell_stock(self, session_id: str, stock_id: str, shares: int) -> TradeResult:
        return self._trade('/trading/sell', session_id, stock_id, shares)

    def _trade(self, path: str, session_id: str, stock_id: str, shares: int) -> TradeResult:
        if shares <= 0:
            raise ValueError(f"shares must be positive, got {shares}")
        data = self._request(
            'POST', path, params={'sessionId': session_id},
            json={'stockId': stock_id, 'shares': shares},
        )
        return _parse(TradeResult, data, path)

    def get_portfolio(self, session_id: str) -> Portfolio:
        data = self._request('GET', '/trading/portfolio', params={'sessionId': session_id})
        return _parse(Portfolio, data, '/trading/portfolio')

    # ---- Market ----
    def get_available_stocks(self, session_id: str) -> List[Stock]:
        data = self._request('GET', '/market/stocks', params={'sessionId': session_id})
        if not isinstance(data, list):
            raise BackendError("Unexpected payload from game service for /market/stocks")
        return [_parse(Stock, item, '/market/stocks') for item in data]

    def update_market_prices(self, session_id: str) -> None:
        self._request('POST', '/market/update-prices', params={'sessionId': session_id})

    # ---- Tools ----
    def use_hint(self, session_id: str, stock_id: str) -> HintResult:
        try:
            data = self._request('POST', '/tools/hint', params={'sessionId': session_id, 'stockId': stock_id})
        except TransientNetworkFailure:
            raise
        except BackendError as exc:
            return HintResult(success=False, message=exc.message)
        return _parse(HintResult, data, '/tools/hint')

    def use_time_boost(self, session_id: str, seconds_to_add: int = 30) -> TimeBoostResult:
        try:
            data = self._request(
                'POST', '/tools/time-boost',
                params={'sessionId': session_id, 'secondsToAdd': seconds_to_add},
            )
        except TransientNetworkFailure:
            raise
        except BackendError as exc:
            # A locked or exhausted tool is a rejection, not a failure
            return TimeBoostResult(success=False, message=exc.message)
        return _parse(TimeBoostResult, data, '/tools/time-boost')

    def check_tool_availability(self, session_id: str, tool_type: str) -> ToolAvailability:
        data = self._request('GET', '/tools/available', params={'sessionId': session_id, 'toolType': tool_type})
        return _parse(ToolAvailability, data, '/tools/available')


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get('message') or body.get('error')
        if message:
            return str(message)
    return f"Game service returned {response.status_code}"


def _parse(dto_cls, data, path: str):
    if not isinstance(data, dict):
        raise BackendError(f"Unexpected payload from game service for {path}")
    try:
        return dto_cls.from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise BackendError(f"Malformed payload from game service for {path}: {exc}") from exc
