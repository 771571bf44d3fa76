"""
MaintFlow - Maintenance Automation Engine

This package contains the flow automation backend:
- triggers: Trigger Engine (rules, conditions, actions, dispatch, execution log)
- storage: Database adapters and ORM base (Postgres, SQLite for tests)
- api: FastAPI REST endpoints (event submission, stats, rule management)
- workers: Background processes (scheduled-trigger poller)
- platform: Cross-cutting concerns (config, logging, metrics)
"""

__version__ = "0.1.0"
