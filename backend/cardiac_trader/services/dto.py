"""Payloads exchanged with the remote game service.

The service speaks camelCase JSON; these dataclasses are the parsed,
immutable snapshots the rest of the package works with.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional, Tuple


DIFFICULTY_LEVELS = ('EASY', 'MEDIUM', 'HARD')
TRANSACTION_TYPES = ('BUY', 'SELL')


def _float(value, default=0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _optional_float(value) -> Optional[float]:
    return None if value is None else _float(value)


@dataclass(frozen=True)
class Stock:
    id: str
    symbol: str
    company_name: str
    sector: Optional[str]
    market_price: float
    heart_image_url: Optional[str] = None
    shares_owned: Optional[float] = None
    average_price: Optional[float] = None
    total_value: Optional[float] = None
    real_stock_symbol: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Stock':
        return cls(
            id=str(data['id']),
            symbol=data.get('symbol') or '',
            company_name=data.get('companyName') or '',
            sector=data.get('sector'),
            market_price=_float(data.get('marketPrice')),
            heart_image_url=data.get('heartImageUrl'),
            shares_owned=_optional_float(data.get('sharesOwned')),
            average_price=_optional_float(data.get('averagePrice')),
            total_value=_optional_float(data.get('totalValue')),
            real_stock_symbol=data.get('realStockSymbol'),
        )

    def to_dict(self):
        return asdict(self)


def _stocks(items) -> Tuple[Stock, ...]:
    return tuple(Stock.from_dict(s) for s in items or ())


@dataclass(frozen=True)
class GameSession:
    id: str
    user_id: str
    current_round: int
    starting_capital: float
    current_capital: float
    status: str
    difficulty_level: Optional[str] = None
    has_active_round: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameSession':
        return cls(
            id=str(data['id']),
            user_id=str(data.get('userId', '')),
            current_round=int(data.get('currentRound') or 1),
            starting_capital=_float(data.get('startingCapital')),
            current_capital=_float(data.get('currentCapital')),
            status=data.get('status') or 'ACTIVE',
            difficulty_level=data.get('difficultyLevel'),
            has_active_round=bool(data.get('hasActiveRound')),
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class RoundStartInfo:
    round_number: int
    server_start_time_ms: int
    duration_seconds: int
    round_id: Optional[str] = None
    game_session_id: Optional[str] = None
    capital: float = 0.0
    available_stocks: Tuple[Stock, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundStartInfo':
        round_number = int(data['roundNumber'])
        duration = int(data['durationSeconds'])
        if round_number < 1:
            raise ValueError(f"roundNumber must be positive, got {round_number}")
        if duration < 1:
            raise ValueError(f"durationSeconds must be positive, got {duration}")
        return cls(
            round_number=round_number,
            server_start_time_ms=int(data['startTime']),
            duration_seconds=duration,
            round_id=data.get('roundId'),
            game_session_id=data.get('gameSessionId'),
            capital=_float(data.get('capital')),
            available_stocks=_stocks(data.get('availableStocks')),
        )

    def to_dict(self):
        payload = asdict(self)
        payload['available_stocks'] = [s.to_dict() for s in self.available_stocks]
        return payload


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    capital_at_start: float
    capital_at_end: float
    profit_loss: float
    profit_loss_percentage: float
    game_complete: bool
    unlocked_tools: Tuple[str, ...] = ()
    next_round_number: Optional[int] = None
    round_id: Optional[str] = None
    revealed_stocks: Tuple[Stock, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundResult':
        next_round = data.get('nextRoundNumber')
        return cls(
            round_number=int(data['roundNumber']),
            capital_at_start=_float(data.get('capitalAtStart')),
            capital_at_end=_float(data.get('capitalAtEnd')),
            profit_loss=_float(data.get('profitLoss')),
            profit_loss_percentage=_float(data.get('profitLossPercentage')),
            game_complete=bool(data.get('gameComplete')),
            unlocked_tools=tuple(data.get('unlockedTools') or ()),
            next_round_number=int(next_round) if next_round is not None else None,
            round_id=data.get('roundId'),
            revealed_stocks=_stocks(data.get('revealedStocks')),
        )

    def to_dict(self):
        payload = asdict(self)
        payload['unlocked_tools'] = list(self.unlocked_tools)
        payload['revealed_stocks'] = [s.to_dict() for s in self.revealed_stocks]
        return payload


@dataclass(frozen=True)
class RoundSummary:
    round_number: int
    capital_at_start: float
    capital_at_end: float
    profit_loss: float
    profit_loss_percentage: float
    duration_seconds: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundSummary':
        duration = data.get('durationSeconds')
        return cls(
            round_number=int(data['roundNumber']),
            capital_at_start=_float(data.get('capitalAtStart')),
            capital_at_end=_float(data.get('capitalAtEnd')),
            profit_loss=_float(data.get('profitLoss')),
            profit_loss_percentage=_float(data.get('profitLossPercentage')),
            duration_seconds=int(duration) if duration is not None else None,
        )


@dataclass(frozen=True)
class GameSummary:
    game_session_id: str
    difficulty_level: Optional[str]
    starting_capital: float
    final_capital: float
    total_profit_loss: float
    total_profit_loss_percentage: float
    rounds: Tuple[RoundSummary, ...] = field(default_factory=tuple)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    best_round_number: Optional[int] = None
    worst_round_number: Optional[int] = None
    best_round_profit: Optional[float] = None
    worst_round_profit: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameSummary':
        return cls(
            game_session_id=str(data.get('gameSessionId', '')),
            difficulty_level=data.get('difficultyLevel'),
            starting_capital=_float(data.get('startingCapital')),
            final_capital=_float(data.get('finalCapital')),
            total_profit_loss=_float(data.get('totalProfitLoss')),
            total_profit_loss_percentage=_float(data.get('totalProfitLossPercentage')),
            rounds=tuple(RoundSummary.from_dict(r) for r in data.get('rounds') or ()),
            started_at=data.get('startedAt'),
            completed_at=data.get('completedAt'),
            best_round_number=data.get('bestRoundNumber'),
            worst_round_number=data.get('worstRoundNumber'),
            best_round_profit=data.get('bestRoundProfit'),
            worst_round_profit=data.get('worstRoundProfit'),
        )

    def to_dict(self):
        payload = asdict(self)
        payload['rounds'] = [asdict(r) for r in self.rounds]
        return payload


@dataclass(frozen=True)
class TimeBoostResult:
    success: bool
    seconds_added: int = 0
    new_duration: Optional[int] = None
    message: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimeBoostResult':
        # Rejections carry success: false; accepted boosts carry newDuration
        if data.get('success') is False:
            return cls(success=False, message=data.get('message') or 'Failed to use time boost')
        new_duration = data.get('newDuration')
        return cls(
            success=True,
            seconds_added=int(data.get('secondsAdded') or 0),
            new_duration=int(new_duration) if new_duration is not None else None,
            message=data.get('message') or '',
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class ToolAvailability:
    tool_type: str
    available: bool
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ToolAvailability':
        return cls(
            tool_type=data.get('toolType', ''),
            available=bool(data.get('available')),
            error=data.get('error'),
        )

    def to_dict(self):
        return asdict(self)



@dataclass(frozen=True)
class HintResult:
    success: bool
    message: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HintResult':
        return cls(success=bool(data.get('success')), message=data.get('message') or '')

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Holding:
    stock_id: str
    symbol: str
    company_name: str
    shares: float
    average_price: float
    current_price: float
    total_value: float
    profit_loss: float
    profit_loss_percentage: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Holding':
        return cls(
            stock_id=str(data['stockId']),
            symbol=data.get('symbol') or '',
            company_name=data.get('companyName') or '',
            shares=_float(data.get('shares')),
            average_price=_float(data.get('averagePrice')),
            current_price=_float(data.get('currentPrice')),
            total_value=_float(data.get('totalValue')),
            profit_loss=_float(data.get('profitLoss')),
            profit_loss_percentage=_float(data.get('profitLossPercentage')),
        )


@dataclass(frozen=True)
class Portfolio:
    cash: float
    total_stock_value: float
    total_portfolio_value: float
    holdings: Tuple[Holding, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Portfolio':
        return cls(
            cash=_float(data.get('cash')),
            total_stock_value=_float(data.get('totalStockValue')),
            total_portfolio_value=_float(data.get('totalPortfolioValue')),
            holdings=tuple(Holding.from_dict(h) for h in data.get('holdings') or ()),
        )

    def to_dict(self):
        payload = asdict(self)
        payload['holdings'] = [asdict(h) for h in self.holdings]
        return payload


@dataclass(frozen=True)
class TradeResult:
    transaction_id: str
    stock_id: str
    stock_symbol: str
    transaction_type: str
    shares: float
    price_per_share: float
    total_value: float
    remaining_cash: float
    timestamp: Optional[str] = None
    message: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TradeResult':
        return cls(
            transaction_id=str(data['transactionId']),
            stock_id=str(data.get('stockId', '')),
            stock_symbol=data.get('stockSymbol') or '',
            transaction_type=data.get('transactionType') or '',
            shares=_float(data.get('shares')),
            price_per_share=_float(data.get('pricePerShare')),
            total_value=_float(data.get('totalValue')),
            remaining_cash=_float(data.get('remainingCash')),
            timestamp=data.get('timestamp'),
            message=data.get('message') or '',
        )

    def to_dict(self):
        return asdict(self)
