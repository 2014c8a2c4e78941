import json
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from addressing import ProductAddressDeriver
from errors import (
    MalformedRecord, NetworkUnavailable, RecordAlreadyExists, RecordNotFound,
    SignatureRejected, TransactionRejected, Unauthorized, WriteRejected,
)
from ledger import AuditReport, LedgerGateway
from schemas import ProductRecord
from signing import Signer, Transaction

logger = logging.getLogger(__name__)

_REJECTIONS = {
    "AccountAlreadyExists": RecordAlreadyExists,
    "Unauthorized": Unauthorized,
    "InvalidSignature": SignatureRejected,
}


@dataclass(frozen=True)
class TransactionReceipt:
    signature: str
    address: str


class LedgerClient:
    """Signed create/append/fetch of product records at derived addresses.

    Holds no per-call state; the signer and gateway are shared by every
    in-flight request.
    """

    def __init__(self, gateway: LedgerGateway, signer: Signer, deriver: Optional[ProductAddressDeriver] = None):
        self.gateway = gateway
        self.signer = signer
        self.deriver = deriver or ProductAddressDeriver(gateway.program_id)

    def address_of(self, product_id: int) -> str:
        return self.deriver.derive(product_id)

    async def create_product(self, product_id: int, name: str, farm_name: str) -> TransactionReceipt:
        address = self.address_of(product_id)
        logger.info("creating product %s at %s", product_id, address)
        return await self._send(product_id, "create_product", address,
                                {"id": product_id, "name": name, "farm_name": farm_name})

    async def add_log(self, product_id: int, status: str, location: str) -> TransactionReceipt:
        address = self.address_of(product_id)
        logger.info("adding log to product %s at %s", product_id, address)
        return await self._send(product_id, "add_log", address, {"status": status, "location": location})

    async def fetch_product(self, product_id: int) -> Optional[ProductRecord]:
        address = self.address_of(product_id)
        try:
            account = await self.gateway.fetch_account(address)
        except OSError as e:
            raise NetworkUnavailable(str(e)) from e
        if account is None:
            logger.debug("no product %s at %s", product_id, address)
            return None
        if account.owner != self.gateway.program_id:
            raise MalformedRecord(f"account {address} is not owned by program {self.gateway.program_id}")
        try:
            state = json.loads(account.data)
            return ProductRecord(
                product_id=state["id"],
                name=state["name"],
                farm_name=state["farm_name"],
                harvest_timestamp=state["harvest_timestamp"],
                authority=state["authority"],
                history=state["history"],
            )
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise MalformedRecord(f"could not decode product account {address}: {e}") from e

    async def verify_product(self, product_id: int) -> Optional[AuditReport]:
        address = self.address_of(product_id)
        try:
            return await self.gateway.audit(address)
        except OSError as e:
            raise NetworkUnavailable(str(e)) from e

    async def _send(self, product_id: int, instruction: str, address: str, args: dict) -> TransactionReceipt:
        tx = Transaction(
            program_id=self.gateway.program_id,
            instruction=instruction,
            address=address,
            args=args,
            signer=self.signer.public_key,
        )
        signed = self.signer.sign_transaction(tx)
        try:
            signature = await self.gateway.submit(signed)
        except TransactionRejected as e:
            if e.code == "AccountNotFound":
                raise RecordNotFound(product_id) from e
            raise _REJECTIONS.get(e.code, WriteRejected)(e.message, code=e.code) from e
        except OSError as e:
            raise NetworkUnavailable(str(e)) from e
        return TransactionReceipt(signature=signature, address=address)
