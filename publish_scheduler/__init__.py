"""Delayed-publish scheduling engine.

Periodically finds posts whose scheduled time has arrived, publishes them
through a host-supplied publisher and records the outcome, with overdue-aware
policies and optimistic locking so several instances can share one store.
"""

__version__ = "0.1.0"
