from typing import Optional


class LedgerError(Exception):
    """Base class for every ledger failure surfaced to callers."""


class RecordNotFound(LedgerError):
    def __init__(self, product_id: int):
        super().__init__(f"product {product_id} not found on the ledger")
        self.product_id = product_id


class WriteRejected(LedgerError):
    """The ledger refused a create/append. `code` is the ledger's reason code."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class RecordAlreadyExists(WriteRejected):
    pass


class Unauthorized(WriteRejected):
    pass


class SignatureRejected(WriteRejected):
    pass


class NetworkUnavailable(LedgerError):
    pass


class MalformedRecord(LedgerError):
    pass


class TransactionRejected(Exception):
    """Raised by a ledger node when a program refuses an instruction."""

    def __init__(self, code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class ModelError(Exception):
    """The generative model answered, but not with usable text."""


class ConfigError(Exception):
    pass
