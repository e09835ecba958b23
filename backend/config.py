import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///cardiac_trader.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Remote game service (pricing, settlement, tool unlocks)
    BACKEND_API_URL = os.environ.get('BACKEND_API_URL', 'http://localhost:8080/api')
    BACKEND_TIMEOUT_SEC = float(os.environ.get('BACKEND_TIMEOUT_SEC', '10'))
    # Countdown tick resolution (ms)
    TICK_INTERVAL_MS = int(os.environ.get('TICK_INTERVAL_MS', '100'))
    # Extra real time allowed past the round end before completion is forced (seconds)
    FALLBACK_GRACE_SEC = float(os.environ.get('FALLBACK_GRACE_SEC', '2'))
    # Seconds requested per time-boost tool use
    TIME_BOOST_SECONDS = int(os.environ.get('TIME_BOOST_SECONDS', '30'))
    # Portfolio poll while a game session is open (seconds, 0 disables)
    PORTFOLIO_REFRESH_SEC = float(os.environ.get('PORTFOLIO_REFRESH_SEC', '5'))
    DEFAULT_DIFFICULTY = os.environ.get('DEFAULT_DIFFICULTY', 'MEDIUM')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
