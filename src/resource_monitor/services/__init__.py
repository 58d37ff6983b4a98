"""Business-logic layer for the resource monitor (in-memory, per-session state).

Engine components:
- history_store.py (bounded per-resource samples, burn rate, module-update log)
- poller.py (refresh-then-fetch with retry/backoff)
- rule_engine.py (condition evaluation and cooldown-gated actions)
- scheduler.py (periodic loops and the in-flight guard)
- session.py (wires the above together for one owner)

Request-facing helpers live in resources_service.py, metrics_service.py and rules_service.py.
"""

# Import side-effects are intentionally avoided here; modules are imported by routers/services as needed.
