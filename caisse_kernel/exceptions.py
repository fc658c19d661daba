"""
Typed Exception Hierarchy for the Caisse Settlement Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Administrators act on engine errors: a missing withdrawal proof is a form
field to fill in, a duplicate refund request is a workflow conflict to look
up.  Callers must be able to tell these apart without parsing messages:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        approve(request, approved_at=now)
    except Exception as e:
        if "document" in str(e):  # FRAGILE - message might change
            ask_for_document()

Example - RIGHT way (what this module enables):
    try:
        approve(request, approved_at=now)
    except DocumentRequiredError as e:
        api_response(code=e.code, request_id=e.request_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CaisseError:

    CaisseError (base)
    |
    +-- ValidationError               bad input, no state mutation
    |   +-- InvalidAmountError
    |   +-- AmountOutOfRangeError
    |   +-- ReasonRequiredError
    |   +-- DocumentRequiredError
    |   +-- ProofRequiredError
    |   +-- WithdrawalDateRequiredError
    |   +-- WithdrawalTimeRequiredError
    |
    +-- InvariantViolationError       rejected atomically, no partial write
    |   +-- NotYetStartedError
    |   +-- DateBeforeContractStartError
    |   +-- OutOfOrderPaymentError
    |   +-- PeriodNotFoundError
    |   +-- PeriodRefusedError
    |   +-- ContributionNotFoundError
    |   +-- AdvanceAlreadyActiveError
    |   +-- AdvanceNotActiveError
    |   +-- SupportNotEligibleError
    |   +-- SupportRepaymentRequiredError
    |   +-- DuplicateActiveRequestError
    |   +-- NotAllPeriodsPaidError
    |   +-- NoContributionYetError
    |   +-- AllPeriodsAlreadyPaidError
    |   +-- RefundRequestNotFoundError
    |
    +-- StateError                    operation not allowed in current state
    |   +-- InvalidRefundTransitionError
    |   +-- InvalidContractTransitionError
    |   +-- ContractTerminatedError
    |   +-- ContractNotActiveError
    |
    +-- EnvironmentRestrictedError    development-only tooling

Missing penalty rules are NOT an exception: the penalty calculator fails
soft (zero penalty, ``rules_configured=False``) and the settlement service
logs ``penalty_rules_missing`` at WARNING.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                          | When Raised
-----------|-------------------------------|-----------------------------------
Validation | INVALID_AMOUNT                | Amount is zero or negative
           | AMOUNT_OUT_OF_RANGE           | Support amount outside min/max
           | REASON_REQUIRED               | Refund reason is blank
           | DOCUMENT_REQUIRED             | Approve without attached document
           | PROOF_REQUIRED                | Payout without withdrawal proof
           | WITHDRAWAL_DATE_REQUIRED      | Payout without withdrawal date
           | WITHDRAWAL_TIME_REQUIRED      | Payout without withdrawal time
-----------|-------------------------------|-----------------------------------
Invariant  | NOT_YET_STARTED               | Date precedes contract start
           | DATE_BEFORE_CONTRACT_START    | Contribution dated before start
           | OUT_OF_ORDER_PAYMENT          | Earlier period still unpaid
           | PERIOD_NOT_FOUND              | No period with that index
           | PERIOD_REFUSED                | Period was refused on rescission
           | CONTRIBUTION_NOT_FOUND        | Correction targets unknown id
           | ADVANCE_ALREADY_ACTIVE        | Second concurrent support advance
           | ADVANCE_NOT_ACTIVE            | Repayment on a repaid advance
           | SUPPORT_NOT_ELIGIBLE          | Eligibility oracle refused
           | SUPPORT_REPAYMENT_REQUIRED    | Ordinary payment while advance open
           | DUPLICATE_ACTIVE_REQUEST      | Non-archived request of same type
           | NOT_ALL_PERIODS_PAID          | Final refund before full payment
           | NO_CONTRIBUTION_YET           | Early refund with nothing paid
           | ALL_PERIODS_ALREADY_PAID      | Payment or early refund on a
           |                               | completed contract
           | REFUND_REQUEST_NOT_FOUND      | No refund request with that id
-----------|-------------------------------|-----------------------------------
State      | INVALID_REFUND_TRANSITION     | Refund state machine violation
           | INVALID_CONTRACT_TRANSITION   | Contract status change not allowed
           | CONTRACT_TERMINATED           | Contract is RESCINDED or CLOSED
           | CONTRACT_NOT_ACTIVE           | DRAFT or refund pending
-----------|-------------------------------|-----------------------------------
Environment| ENVIRONMENT_RESTRICTED        | Dev tool used outside development
"""


class CaisseError(Exception):
    """
    Base exception for all caisse engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CAISSE_ERROR"


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(CaisseError):
    """Base exception for bad caller input."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount must be strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, field: str = "amount"):
        self.amount = amount
        self.field = field
        super().__init__(f"{field} must be positive, got {amount}")


class AmountOutOfRangeError(ValidationError):
    """Support amount outside the configured bounds."""

    code: str = "AMOUNT_OUT_OF_RANGE"

    def __init__(self, amount: object, minimum: object, maximum: object):
        self.amount = amount
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Amount {amount} outside allowed range [{minimum}, {maximum}]"
        )


class ReasonRequiredError(ValidationError):
    """Refund request submitted without a reason."""

    code: str = "REASON_REQUIRED"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"A reason is required for refund on contract {contract_id}")


class DocumentRequiredError(ValidationError):
    """Approval attempted before a supporting document was attached."""

    code: str = "DOCUMENT_REQUIRED"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Refund request {request_id} has no supporting document")


class ProofRequiredError(ValidationError):
    """Payout attempted without a withdrawal proof."""

    code: str = "PROOF_REQUIRED"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Withdrawal proof required for refund request {request_id}")


class WithdrawalDateRequiredError(ValidationError):
    """Payout attempted without a withdrawal date."""

    code: str = "WITHDRAWAL_DATE_REQUIRED"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Withdrawal date required for refund request {request_id}")


class WithdrawalTimeRequiredError(ValidationError):
    """Payout attempted without a withdrawal time."""

    code: str = "WITHDRAWAL_TIME_REQUIRED"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Withdrawal time required for refund request {request_id}")


# =============================================================================
# Invariant violations
# =============================================================================


class InvariantViolationError(CaisseError):
    """Base exception for rejected operations that would break an invariant."""

    code: str = "INVARIANT_VIOLATION"


class NotYetStartedError(InvariantViolationError):
    """Target date falls before the contract start date."""

    code: str = "NOT_YET_STARTED"

    def __init__(self, contract_start: str, target_date: str):
        self.contract_start = contract_start
        self.target_date = target_date
        super().__init__(
            f"Date {target_date} is before contract start {contract_start}"
        )


class DateBeforeContractStartError(InvariantViolationError):
    """Contribution dated before the contract start date."""

    code: str = "DATE_BEFORE_CONTRACT_START"

    def __init__(self, contract_start: str, paid_at: str):
        self.contract_start = contract_start
        self.paid_at = paid_at
        super().__init__(
            f"Contribution dated {paid_at} precedes contract start {contract_start}"
        )


class OutOfOrderPaymentError(InvariantViolationError):
    """Payment targets a period while an earlier one is still unpaid."""

    code: str = "OUT_OF_ORDER_PAYMENT"

    def __init__(self, target_index: int, next_due_index: int):
        self.target_index = target_index
        self.next_due_index = next_due_index
        super().__init__(
            f"Cannot pay period {target_index}: period {next_due_index} is not paid"
        )


class PeriodNotFoundError(InvariantViolationError):
    """No period with the requested index exists on the contract."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_index: int):
        self.period_index = period_index
        super().__init__(f"Period not found: {period_index}")


class PeriodRefusedError(InvariantViolationError):
    """Period was refused when the contract was rescinded."""

    code: str = "PERIOD_REFUSED"

    def __init__(self, period_index: int):
        self.period_index = period_index
        super().__init__(f"Period {period_index} is refused")


class ContributionNotFoundError(InvariantViolationError):
    """Correction targets a contribution that is not on the period."""

    code: str = "CONTRIBUTION_NOT_FOUND"

    def __init__(self, contribution_id: str, period_index: int):
        self.contribution_id = contribution_id
        self.period_index = period_index
        super().__init__(
            f"Contribution {contribution_id} not found on period {period_index}"
        )


class AdvanceAlreadyActiveError(InvariantViolationError):
    """A support advance is already active on the contract."""

    code: str = "ADVANCE_ALREADY_ACTIVE"

    def __init__(self, contract_id: str, advance_id: str):
        self.contract_id = contract_id
        self.advance_id = advance_id
        super().__init__(
            f"Contract {contract_id} already has active advance {advance_id}"
        )


class AdvanceNotActiveError(InvariantViolationError):
    """Repayment attempted on an advance that is already repaid."""

    code: str = "ADVANCE_NOT_ACTIVE"

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Support advance {advance_id} is not active")


class SupportNotEligibleError(InvariantViolationError):
    """The eligibility oracle refused a support advance."""

    code: str = "SUPPORT_NOT_ELIGIBLE"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract {contract_id} is not eligible for support")


class SupportRepaymentRequiredError(InvariantViolationError):
    """Ordinary contribution attempted while an advance is outstanding."""

    code: str = "SUPPORT_REPAYMENT_REQUIRED"

    def __init__(self, contract_id: str, advance_id: str):
        self.contract_id = contract_id
        self.advance_id = advance_id
        super().__init__(
            f"Advance {advance_id} must be repaid before contributions on {contract_id}"
        )


class DuplicateActiveRequestError(InvariantViolationError):
    """A non-archived refund request of the same type already exists."""

    code: str = "DUPLICATE_ACTIVE_REQUEST"

    def __init__(self, contract_id: str, refund_type: str, request_id: str):
        self.contract_id = contract_id
        self.refund_type = refund_type
        self.request_id = request_id
        super().__init__(
            f"Contract {contract_id} already has {refund_type} request {request_id}"
        )


class NotAllPeriodsPaidError(InvariantViolationError):
    """Final refund requested before every period is paid."""

    code: str = "NOT_ALL_PERIODS_PAID"

    def __init__(self, contract_id: str, paid_count: int, period_count: int):
        self.contract_id = contract_id
        self.paid_count = paid_count
        self.period_count = period_count
        super().__init__(
            f"Contract {contract_id}: {paid_count}/{period_count} periods paid"
        )


class NoContributionYetError(InvariantViolationError):
    """Early refund requested before any contribution was made."""

    code: str = "NO_CONTRIBUTION_YET"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract {contract_id} has no contribution yet")


class AllPeriodsAlreadyPaidError(InvariantViolationError):
    """Early refund requested on a fully paid contract."""

    code: str = "ALL_PERIODS_ALREADY_PAID"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(
            f"Contract {contract_id} is fully paid; request a final refund instead"
        )


class RefundRequestNotFoundError(InvariantViolationError):
    """No refund request with the given id on the contract."""

    code: str = "REFUND_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Refund request not found: {request_id}")


# =============================================================================
# State errors
# =============================================================================


class StateError(CaisseError):
    """Base exception for operations not allowed in the current state."""

    code: str = "STATE_ERROR"


class InvalidRefundTransitionError(StateError):
    """Refund request cannot move from its current status."""

    code: str = "INVALID_REFUND_TRANSITION"

    def __init__(self, request_id: str, from_status: str, to_status: str):
        self.request_id = request_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Refund request {request_id}: cannot go from {from_status} to {to_status}"
        )


class InvalidContractTransitionError(StateError):
    """Contract status change not allowed from the current status."""

    code: str = "INVALID_CONTRACT_TRANSITION"

    def __init__(self, contract_id: str, from_status: str, to_status: str):
        self.contract_id = contract_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Contract {contract_id}: cannot go from {from_status} to {to_status}"
        )


class ContractTerminatedError(StateError):
    """Contract is RESCINDED or CLOSED and accepts no further operations."""

    code: str = "CONTRACT_TERMINATED"

    def __init__(self, contract_id: str, status: str):
        self.contract_id = contract_id
        self.status = status
        super().__init__(f"Contract {contract_id} is {status}")


class ContractNotActiveError(StateError):
    """Contract cannot take payments in its current status (DRAFT or refund pending)."""

    code: str = "CONTRACT_NOT_ACTIVE"

    def __init__(self, contract_id: str, status: str):
        self.contract_id = contract_id
        self.status = status
        super().__init__(f"Contract {contract_id} is not active (status {status})")


# =============================================================================
# Environment
# =============================================================================


class EnvironmentRestrictedError(CaisseError):
    """Development-only tooling invoked in another environment."""

    code: str = "ENVIRONMENT_RESTRICTED"

    def __init__(self, operation: str, environment: str):
        self.operation = operation
        self.environment = environment
        super().__init__(f"{operation} is not available in {environment}")
