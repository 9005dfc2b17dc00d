"""
RMV client: driver license and vehicle verification.
"""
from typing import Any, Dict

from app.integrations.base import IntegrationClient


class RMVClient(IntegrationClient):
    display_name = "RMV"

    def validate_license(self, license_number: str, state: str) -> Dict[str, Any]:
        return self.call(
            "POST",
            "/license/validate",
            payload={"licenseNumber": license_number, "state": state},
        )

    def driver_history(self, license_number: str, state: str) -> Dict[str, Any]:
        return self.call(
            "GET",
            "/driver/history",
            params={"license": license_number, "state": state},
        )

    def vehicle_history(self, vin: str) -> Dict[str, Any]:
        return self.call("GET", "/vehicle/history", params={"vin": vin})
