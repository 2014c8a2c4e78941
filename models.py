from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, ForeignKey, UniqueConstraint
from database import Base


class Account(Base):
    __tablename__ = "accounts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    address: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    owner: Mapped[str] = mapped_column(String(128))
    data: Mapped[str] = mapped_column(Text)
    created_at: Mapped[int] = mapped_column(Integer)
    # bumped on every write; an UPDATE against a stale version matches no row
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    transactions: Mapped[list["LedgerTransaction"]] = relationship(
        "LedgerTransaction", back_populates="account", order_by="LedgerTransaction.id"
    )

    __mapper_args__ = {"version_id_col": version}


class LedgerTransaction(Base):
    __tablename__ = "transactions"
    # one successor per chain link
    __table_args__ = (UniqueConstraint("account_id", "prev_hash", name="uq_transactions_chain_link"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), index=True)
    instruction: Mapped[str] = mapped_column(String(64))
    payload: Mapped[str] = mapped_column(Text)
    signer: Mapped[str] = mapped_column(String(64))
    signature: Mapped[str] = mapped_column(String(128), unique=True)
    timestamp: Mapped[int] = mapped_column(Integer)
    prev_hash: Mapped[str] = mapped_column(String(128))
    hash: Mapped[str] = mapped_column(String(128))
    account: Mapped[Account] = relationship("Account", back_populates="transactions")
