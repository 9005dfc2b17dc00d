"""
CLUE client: prior claims history for a policy.
"""
from typing import Any, Dict, List

from app.integrations.base import IntegrationClient


class CLUEClient(IntegrationClient):
    display_name = "CLUE"

    def claim_history(self, policy_number: str) -> List[Dict[str, Any]]:
        data = self.call("GET", f"/history/{policy_number}")
        if isinstance(data, dict):
            return data.get("claims", [])
        return data
