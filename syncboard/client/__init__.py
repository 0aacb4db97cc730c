"""Polling client for the syncboard dashboard API."""

from .api import DashboardApi, DashboardClientError
from .state_machine import ClientPhase, ClientState, PollingClient, ViewModel

__all__ = [
    "ClientPhase",
    "ClientState",
    "DashboardApi",
    "DashboardClientError",
    "PollingClient",
    "ViewModel",
]
