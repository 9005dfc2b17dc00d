"""
Field and cross-field validation rules.

Rules are registered per entity kind in static tables keyed by field name.
Each rule looks at the field value (and, for cross-field rules, the rest of
the record) and returns a reason string when the constraint is violated.
Every violation is collected; validation never stops at the first failure.
"""
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from app.core.errors import ValidationError, Violation
from app.db.models import ALLOWED_CONTENT_TYPES, ClaimStatus, PaymentMethod, RoleName
from app.services.result import Err, Ok, Result

POLICY_NUMBER_PATTERN = re.compile(r"^POL-\d{4}-\d{6}$")
ENDORSEMENT_NUMBER_PATTERN = re.compile(r"^END-\d{10}$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]{3,50}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class RuleContext:
    """Inputs a rule may need besides the record itself."""
    today: date
    max_upload_size_bytes: int


Rule = Callable[[Any, Mapping[str, Any], RuleContext], Optional[str]]


# ---------------------------------------------------------------------------
# Rule building blocks
# ---------------------------------------------------------------------------

def _as_decimal(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _one_year_after(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # 29 February
        return day + timedelta(days=365)


def required(value, data, ctx):
    if value is None or (isinstance(value, str) and not value.strip()):
        return "is required"
    return None


def matches(pattern: "re.Pattern[str]", example: str) -> Rule:
    def rule(value, data, ctx):
        if not isinstance(value, str) or not pattern.match(value):
            return f"must match the format {example}"
        return None
    return rule


def is_date(value, data, ctx):
    if not isinstance(value, date):
        return "must be a valid date"
    return None


def not_in_future(value, data, ctx):
    if isinstance(value, date) and value > ctx.today:
        return "must not be in the future"
    return None


def after_field(other: str) -> Rule:
    def rule(value, data, ctx):
        start = data.get(other)
        if isinstance(value, date) and isinstance(start, date) and value <= start:
            return f"must be after {other}"
        return None
    return rule


def not_before_field(other: str) -> Rule:
    def rule(value, data, ctx):
        start = data.get(other)
        if isinstance(value, date) and isinstance(start, date) and value < start:
            return f"must not be before {other}"
        return None
    return rule


def within_one_year_of(other: str) -> Rule:
    def rule(value, data, ctx):
        start = data.get(other)
        if isinstance(value, date) and isinstance(start, date) and value > _one_year_after(start):
            return f"must be within one year of {other}"
        return None
    return rule


def positive(value, data, ctx):
    amount = _as_decimal(value)
    if amount is None:
        return "must be a number"
    if amount <= 0:
        return "must be greater than zero"
    return None


def non_negative(value, data, ctx):
    amount = _as_decimal(value)
    if amount is None:
        return "must be a number"
    if amount < 0:
        return "must not be negative"
    return None


def is_number(value, data, ctx):
    if _as_decimal(value) is None:
        return "must be a number"
    return None


def one_of(choices: Sequence[str]) -> Rule:
    allowed = [str(getattr(c, "value", c)) for c in choices]

    def rule(value, data, ctx):
        if str(getattr(value, "value", value)) not in allowed:
            return f"must be one of {', '.join(allowed)}"
        return None
    return rule


def each_one_of(choices: Sequence[str]) -> Rule:
    single = one_of(choices)

    def rule(value, data, ctx):
        if not isinstance(value, (list, tuple, set)):
            return "must be a list"
        for item in value:
            reason = single(item, data, ctx)
            if reason:
                return reason
        return None
    return rule


def min_length(length: int) -> Rule:
    def rule(value, data, ctx):
        if not isinstance(value, str) or len(value) < length:
            return f"must be at least {length} characters"
        return None
    return rule


def content_type_allowed(value, data, ctx):
    if value not in ALLOWED_CONTENT_TYPES:
        return f"unsupported file type; allowed: {', '.join(ALLOWED_CONTENT_TYPES)}"
    return None


def file_size_within_limit(value, data, ctx):
    if not isinstance(value, int) or value <= 0:
        return "file is empty"
    if value > ctx.max_upload_size_bytes:
        limit_mb = ctx.max_upload_size_bytes // (1024 * 1024)
        return f"file size exceeds the maximum of {limit_mb} MB"
    return None


# ---------------------------------------------------------------------------
# Rule tables
#
# ``required`` guards are listed first. Rules after it only run when the value
# is present; for optional fields every rule is skipped when the value is None.
# ---------------------------------------------------------------------------

RuleTable = Dict[str, Tuple[Rule, ...]]

POLICY_RULES: RuleTable = {
    "policy_number": (required, matches(POLICY_NUMBER_PATTERN, "POL-YYYY-NNNNNN")),
    "effective_date": (required, is_date),
    "expiry_date": (
        required,
        is_date,
        after_field("effective_date"),
        within_one_year_of("effective_date"),
    ),
    "total_premium": (required, positive),
    "owner_id": (required,),
}

COVERAGE_RULES: RuleTable = {
    "coverage_type": (required,),
    "limit_amount": (required, non_negative),
    "deductible": (non_negative,),
    "premium": (non_negative,),
}

ENDORSEMENT_RULES: RuleTable = {
    "endorsement_number": (required, matches(ENDORSEMENT_NUMBER_PATTERN, "END-NNNNNNNNNN")),
    "effective_date": (required, is_date),
    "expiry_date": (required, is_date, after_field("effective_date")),
    "premium_adjustment": (required, is_number),
}

CLAIM_RULES: RuleTable = {
    "policy_id": (required,),
    "incident_date": (required, is_date, not_in_future),
    "reported_date": (is_date, not_before_field("incident_date"), not_in_future),
    "claim_amount": (required, positive),
    "status": (one_of(list(ClaimStatus)),),
}

CLAIM_STATUS_RULES: RuleTable = {
    "status": (required, one_of(list(ClaimStatus))),
}

DOCUMENT_RULES: RuleTable = {
    "file_name": (required,),
    "content_type": (required, content_type_allowed),
    "file_size": (required, file_size_within_limit),
}

# Amount limits depend on the claim and are enforced by the claim service
PAYMENT_RULES: RuleTable = {
    "amount": (required, is_number),
    "payment_method": (required, one_of(list(PaymentMethod))),
}

USER_RULES: RuleTable = {
    "username": (required, matches(USERNAME_PATTERN, "3-50 letters, digits, '.', '_' or '-'")),
    "email": (required, matches(EMAIL_PATTERN, "name@example.com")),
    "password": (required, min_length(MIN_PASSWORD_LENGTH)),
    "roles": (each_one_of(list(RoleName)),),
}

USER_UPDATE_RULES: RuleTable = {
    "email": (matches(EMAIL_PATTERN, "name@example.com"),),
    "roles": (each_one_of(list(RoleName)),),
}

PASSWORD_RULES: RuleTable = {
    "new_password": (required, min_length(MIN_PASSWORD_LENGTH)),
}

RULES: Dict[str, RuleTable] = {
    "policy": POLICY_RULES,
    "coverage": COVERAGE_RULES,
    "endorsement": ENDORSEMENT_RULES,
    "claim": CLAIM_RULES,
    "claim_status": CLAIM_STATUS_RULES,
    "document": DOCUMENT_RULES,
    "payment": PAYMENT_RULES,
    "user": USER_RULES,
    "user_update": USER_UPDATE_RULES,
    "password": PASSWORD_RULES,
}


class Validator:
    """Checks records against the rule tables.

    Stateless apart from its configuration; a single instance is built by the
    container and shared by every service.
    """

    def __init__(
        self,
        max_upload_size_bytes: int = 10 * 1024 * 1024,
        clock: Callable[[], date] = date.today,
        rules: Optional[Dict[str, RuleTable]] = None,
    ):
        self.max_upload_size_bytes = max_upload_size_bytes
        self.clock = clock
        self.rules = rules if rules is not None else RULES

    def _context(self) -> RuleContext:
        return RuleContext(today=self.clock(), max_upload_size_bytes=self.max_upload_size_bytes)

    def violations(self, kind: str, data: Mapping[str, Any], prefix: str = "") -> List[Violation]:
        """All violations of ``data`` against the ``kind`` table."""
        table = self.rules[kind]
        ctx = self._context()
        found: List[Violation] = []
        for field, rules in table.items():
            value = data.get(field)
            for rule in rules:
                if value is None and rule is not required:
                    break
                reason = rule(value, data, ctx)
                if reason:
                    name = f"{prefix}.{field}" if prefix else field
                    found.append(Violation(name, reason))
                    break
        return found

    def validate(self, kind: str, data: Mapping[str, Any]) -> Result[None]:
        return self.to_result(self.violations(kind, data))

    @staticmethod
    def to_result(violations: List[Violation]) -> Result[None]:
        if violations:
            return Err(ValidationError(violations))
        return Ok(None)
