# ==========================================================
#                  LEDGER EXCEPTIONS
# ==========================================================


class LedgerError(Exception):
    """Base ledger exception"""
    status_code = 500
    error_code = "LEDGER_ERROR"

    def to_dict(self):
        return {"error": self.error_code, "message": str(self)}


class ValidationError(LedgerError):
    """Malformed address, amount, contract length or status. Raised before any store access."""
    status_code = 400
    error_code = "VALIDATION_ERROR"


class UnsupportedBankError(ValidationError):
    status_code = 400
    error_code = "BANK_NOT_SUPPORTED"


class NonPositiveNetError(ValidationError):
    """Cash-out amount does not cover the FX and payout fees."""
    status_code = 400
    error_code = "NET_LE_0"


class InsufficientFundsError(LedgerError):
    """Requested debit exceeds the computed spendable balance."""
    status_code = 400
    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, requested, spendable, message=None):
        self.requested = requested
        self.spendable = spendable
        super().__init__(message or f"Requested {requested} exceeds spendable balance {spendable}")

    def to_dict(self):
        data = super().to_dict()
        data["requested"] = str(self.requested)
        data["spendable"] = str(self.spendable)
        return data


class ConflictError(LedgerError):
    """Unique-key claim (code, identifier, address) already taken."""
    status_code = 409
    error_code = "CONFLICT"


class TransientStoreError(LedgerError):
    """Connection or transaction failure; safe to retry later."""
    status_code = 503
    error_code = "STORE_UNAVAILABLE"


class NotFoundError(LedgerError):
    status_code = 404
    error_code = "NOT_FOUND"
