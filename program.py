"""State-transition rules of the product record program run by the ledger node."""
from typing import Any, Dict, Optional

from addressing import derive_program_address, product_seeds
from errors import TransactionRejected

Json = Dict[str, Any]

MAX_FIELD_BYTES = 32
MAX_HISTORY = 10


class ProductProgram:
    def __init__(self, program_id: str, max_field_bytes: int = MAX_FIELD_BYTES, max_history: int = MAX_HISTORY):
        self.program_id = program_id
        self.max_field_bytes = max_field_bytes
        self.max_history = max_history

    def execute(self, instruction: str, address: str, args: Json, signer: str,
                current: Optional[Json], now: int) -> Json:
        """Return the account state after applying `instruction`, or raise TransactionRejected."""
        if instruction == "create_product":
            return self._create_product(address, args, signer, current, now)
        if instruction == "add_log":
            return self._add_log(args, signer, current, now)
        raise TransactionRejected("UnknownInstruction", f"instruction {instruction!r} is not supported")

    def _text(self, args: Json, key: str) -> str:
        value = args.get(key)
        if not isinstance(value, str):
            raise TransactionRejected("InvalidArguments", f"{key} must be a string")
        if not value.strip():
            raise TransactionRejected("EmptyField", f"{key} must not be empty")
        if len(value.encode("utf-8")) > self.max_field_bytes:
            raise TransactionRejected("InputTooLong", f"{key} exceeds {self.max_field_bytes} bytes")
        return value

    def _create_product(self, address: str, args: Json, signer: str, current: Optional[Json], now: int) -> Json:
        if current is not None:
            raise TransactionRejected("AccountAlreadyExists", f"account {address} already in use")
        product_id = args.get("id")
        try:
            seeds = product_seeds(product_id)
        except ValueError as e:
            raise TransactionRejected("InvalidArguments", str(e)) from e
        if derive_program_address(seeds, self.program_id) != address:
            raise TransactionRejected("InvalidAddress", "address does not match the product seeds")
        return {
            "id": product_id,
            "name": self._text(args, "name"),
            "farm_name": self._text(args, "farm_name"),
            "harvest_timestamp": now,
            "authority": signer,
            "history": [],
        }

    def _add_log(self, args: Json, signer: str, current: Optional[Json], now: int) -> Json:
        if current is None:
            raise TransactionRejected("AccountNotFound", "the product account has not been created")
        if current["authority"] != signer:
            raise TransactionRejected("Unauthorized", "You are not authorized to perform this action.")
        history = list(current["history"])
        if len(history) >= self.max_history:
            raise TransactionRejected("HistoryFull", f"history already holds {self.max_history} entries")
        status = self._text(args, "status")
        location = self._text(args, "location")
        # timestamps never go backwards even if the node clock does
        timestamp = max([now] + [entry["timestamp"] for entry in history[-1:]])
        history.append({"timestamp": timestamp, "status": status, "location": location})
        return dict(current, history=history)
