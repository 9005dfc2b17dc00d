"""
PolicySTAR client: exports policies to the policy administration system.
"""
from typing import Any, Dict

from app.core.errors import IntegrationUnavailableError
from app.db.models import ExportStatus
from app.integrations.base import IntegrationClient

CLIENT_VERSION = "2.0"


class PolicyStarClient(IntegrationClient):
    display_name = "PolicySTAR"

    def default_headers(self) -> Dict[str, str]:
        headers = super().default_headers()
        headers["X-Client-Version"] = CLIENT_VERSION
        return headers

    def export_policy(self, payload: Dict[str, Any]) -> str:
        """Submit a policy export; returns PolicySTAR's export reference."""
        data = self.call("POST", "/export", payload=payload)
        reference = data.get("exportReference") if isinstance(data, dict) else None
        if not reference:
            raise IntegrationUnavailableError(
                self.name, "PolicySTAR response did not include an export reference"
            )
        return str(reference)

    def check_export_status(self, reference: str) -> ExportStatus:
        data = self.call("GET", f"/status/{reference}")
        raw = data.get("status") if isinstance(data, dict) else None
        try:
            return ExportStatus(raw)
        except ValueError:
            raise IntegrationUnavailableError(
                self.name, f"PolicySTAR reported an unknown export status: {raw}"
            )
