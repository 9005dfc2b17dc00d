"""
External system clients
"""
from app.integrations.base import IntegrationClient
from app.integrations.policystar import PolicyStarClient
from app.integrations.rmv import RMVClient
from app.integrations.speedpay import SpeedPayClient
from app.integrations.clue import CLUEClient

__all__ = [
    "IntegrationClient",
    "PolicyStarClient",
    "RMVClient",
    "SpeedPayClient",
    "CLUEClient",
]
