# ══════════════════════════════════════════════════════════
#   ERRORS
#   Every error carries a code that the view layer reports
#   back to the caller together with the message.
# ══════════════════════════════════════════════════════════
class BillingError(Exception):
    code = 'billing_error'


class BillingValidationError(BillingError):
    """Bad input: readings, missing fields, non-numeric amounts."""
    code = 'validation_error'


class StaleCreditBalanceError(BillingValidationError):
    """The caller quoted against a credit balance that has since changed."""
    code = 'stale_credit_balance'


class InvalidBillStateError(BillingValidationError):
    code = 'invalid_bill_state'


class NotFoundError(BillingError):
    code = 'not_found'


class DuplicateBillError(BillingError):
    code = 'duplicate_bill'


class IdExhaustedError(BillingError):
    code = 'id_exhausted'


class InsufficientCreditError(BillingError):
    code = 'insufficient_credit'


class InsufficientPaymentError(BillingError):
    code = 'insufficient_payment'


class PersistenceError(BillingError):
    code = 'persistence_error'
