import os
import sys
import pytest

# Ensure the backend root (containing the `cardiac_trader` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from cardiac_trader import create_app, db, socketio, round_registry
from cardiac_trader.errors import TransientNetworkFailure
from cardiac_trader.services.dto import (
    GameSession,
    GameSummary,
    HintResult,
    Holding,
    Portfolio,
    RoundResult,
    RoundStartInfo,
    RoundSummary,
    Stock,
    TimeBoostResult,
    ToolAvailability,
    TradeResult,
)
from cardiac_trader.services.rounds import RoundController
from cardiac_trader.services.rounds.scheduling import InlineScheduler

# Server-issued round start used throughout the tests
T0 = 1_700_000_000_000
SESSION_ID = 'sess-1'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BACKEND_API_URL = 'http://backend.test/api'
    TICK_INTERVAL_MS = 100
    FALLBACK_GRACE_SEC = 2
    TIME_BOOST_SECONDS = 30
    PORTFOLIO_REFRESH_SEC = 5


class FakeClock:
    def __init__(self, now_ms: int = T0):
        self.now_ms = now_ms

    def now(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeBackend:
    """Stands in for BackendAPI; records every call."""

    def __init__(self):
        self.calls = []
        self.session = GameSession(
            id=SESSION_ID, user_id='user-1', current_round=1, starting_capital=10000.0,
            current_capital=10000.0, status='ACTIVE', difficulty_level='MEDIUM',
        )
        self.current_session = self.session
        self.round_info = RoundStartInfo(round_number=1, server_start_time_ms=T0, duration_seconds=60)
        self.result = RoundResult(
            round_number=1, capital_at_start=10000.0, capital_at_end=10450.0, profit_loss=450.0,
            profit_loss_percentage=4.5, game_complete=False, unlocked_tools=('HINT',), next_round_number=2,
        )
        self.summary = GameSummary(
            game_session_id=SESSION_ID, difficulty_level='MEDIUM', starting_capital=10000.0,
            final_capital=11200.0, total_profit_loss=1200.0, total_profit_loss_percentage=12.0,
            rounds=(RoundSummary(1, 10000.0, 10450.0, 450.0, 4.5),),
            best_round_number=1, best_round_profit=450.0,
        )
        self.boost = TimeBoostResult(success=True, seconds_added=30, new_duration=90)
        self.hint = HintResult(success=True, message='HTCH has 4 hearts')
        self.stocks = [
            Stock(id='stk-1', symbol='HTCH', company_name='HeartTech', sector='TECH', market_price=120.0),
        ]
        self.portfolio = Portfolio(
            cash=9760.0, total_stock_value=240.0, total_portfolio_value=10000.0,
            holdings=(Holding('stk-1', 'HTCH', 'HeartTech', 2.0, 120.0, 120.0, 240.0, 0.0, 0.0),),
        )
        self.fail_portfolio = False
        # Raised from complete_round instead of a service error
        self.complete_crash = None
        self.fail_complete = 0
        self.fail_summary = False
        self.fail_start_round = False
        self.unreachable = False
        # Called from inside complete_round, while the call is "in flight"
        self.on_complete = None

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def start_new_game(self, user_id, difficulty=None):
        self.calls.append(('start_new_game', user_id, difficulty))
        return self.session

    def get_current_session(self, user_id):
        self.calls.append(('get_current_session', user_id))
        if self.unreachable:
            raise TransientNetworkFailure('Game service unreachable')
        return self.current_session

    def start_round(self, session_id):
        self.calls.append(('start_round', session_id))
        if self.fail_start_round:
            raise TransientNetworkFailure('Game service returned 503', status_code=503)
        return self.round_info

    def complete_round(self, session_id, round_number):
        self.calls.append(('complete_round', session_id, round_number))
        if self.on_complete is not None:
            self.on_complete()
        if self.complete_crash is not None:
            crash, self.complete_crash = self.complete_crash, None
            raise crash
        if self.fail_complete:
            self.fail_complete -= 1
            raise TransientNetworkFailure('Read timed out')
        return self.result

    def fetch_game_summary(self, session_id):
        self.calls.append(('fetch_game_summary', session_id))
        if self.fail_summary:
            raise TransientNetworkFailure('Game service returned 502', status_code=502)
        return self.summary

    def use_time_boost(self, session_id, seconds_to_add=30):
        self.calls.append(('use_time_boost', session_id, seconds_to_add))
        return self.boost

    def check_tool_availability(self, session_id, tool_type):
        self.calls.append(('check_tool_availability', session_id, tool_type))
        return ToolAvailability(tool_type=tool_type, available=tool_type == 'HINT')

    def use_hint(self, session_id, stock_id):
        self.calls.append(('use_hint', session_id, stock_id))
        return self.hint

    def get_portfolio(self, session_id):
        self.calls.append(('get_portfolio', session_id))
        if self.fail_portfolio:
            raise TransientNetworkFailure('Read timed out')
        return self.portfolio

    def buy_stock(self, session_id, stock_id, shares):
        self.calls.append(('buy_stock', session_id, stock_id, shares))
        return self._trade('BUY', stock_id, shares)

    def sell_stock(self, session_id, stock_id, shares):
        self.calls.append(('sell_stock', session_id, stock_id, shares))
        return self._trade('SELL', stock_id, shares)

    def _trade(self, side, stock_id, shares):
        return TradeResult(
            transaction_id='tx-1', stock_id=stock_id, stock_symbol='HTCH', transaction_type=side,
            shares=float(shares), price_per_share=120.0, total_value=120.0 * shares,
            remaining_cash=9760.0, message='ok',
        )

    def get_available_stocks(self, session_id):
        self.calls.append(('get_available_stocks', session_id))
        return list(self.stocks)

    def update_market_prices(self, session_id):
        self.calls.append(('update_market_prices', session_id))


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def scheduler():
    return InlineScheduler()


@pytest.fixture()
def deferred_scheduler():
    # Spawned work waits for run_pending(), so tests can act while it is queued
    return InlineScheduler(run_spawned=False)


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def closed_sessions():
    return []


def make_controller(backend, scheduler, clock, events, closed_sessions=None):
    return RoundController(
        SESSION_ID,
        gateway=backend,
        scheduler=scheduler,
        clock=clock,
        notify=lambda event, payload: events.append((event, payload)),
        tick_interval=0.1,
        fallback_grace=2,
        on_session_closed=(closed_sessions.append if closed_sessions is not None else None),
    )


@pytest.fixture()
def controller(backend, scheduler, clock, events, closed_sessions):
    return make_controller(backend, scheduler, clock, events, closed_sessions)


@pytest.fixture()
def flask_app(backend, clock):
    application = create_app(TestConfig)
    registry = round_registry(application)
    registry.gateway = backend
    registry.clock = clock
    with application.app_context():
        # Ensure models are imported so tables are created
        import cardiac_trader.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
