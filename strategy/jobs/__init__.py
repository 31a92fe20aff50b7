# PATH: strategy/jobs/__init__.py
"""
Strategy jobs package.

Available entry points:
    python -m strategy.jobs.run_bot        # Block-driven arbitrage bot

NOTE: This __init__.py intentionally does NOT import run_bot, which installs
signal handlers and configures logging. Import it directly when needed:

    from strategy.jobs.run_bot import main
"""

__all__: list[str] = []
