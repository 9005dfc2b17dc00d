"""
SpeedPay client: claim payment processing.
"""
import uuid
from decimal import Decimal
from typing import Any, Dict

from app.core.errors import IntegrationRejectedError
from app.integrations.base import IntegrationClient

CURRENCY = "USD"


class SpeedPayClient(IntegrationClient):
    display_name = "SpeedPay"

    def default_headers(self) -> Dict[str, str]:
        headers = super().default_headers()
        headers["X-Request-ID"] = f"REQ-{uuid.uuid4().hex[:16].upper()}"
        return headers

    def _check_accepted(self, data: Any, action: str) -> Dict[str, Any]:
        # SpeedPay answers declines with 200 and success=false
        if not isinstance(data, dict) or data.get("success") is False:
            reason = data.get("error") if isinstance(data, dict) else None
            raise IntegrationRejectedError(
                self.name, f"SpeedPay declined the {action}: {reason or 'no reason given'}"
            )
        return data

    def process_payment(self, transaction_id: str, amount: Decimal, method: str) -> Dict[str, Any]:
        """Charge a claim payment; returns SpeedPay's confirmation."""
        data = self.call(
            "POST",
            "/process",
            payload={
                "transactionId": transaction_id,
                "amount": str(amount),
                "currency": CURRENCY,
                "paymentMethod": method,
                "description": "Insurance claim payment",
            },
        )
        return self._check_accepted(data, "payment")
