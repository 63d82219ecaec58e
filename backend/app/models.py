from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .core.config import settings
from .db import Base


class SwapOrder(Base):
    """Flat analysis record joining one matched order with its two swaps.

    ``user_*`` columns track the initiator's swap on the source chain and
    ``cobi_*`` columns the counterparty's swap on the destination chain.
    """

    __tablename__ = settings.orders_table

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    create_order_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    source_swap_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_swap_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source_chain: Mapped[str] = mapped_column(String, nullable=False)
    destination_chain: Mapped[str] = mapped_column(String, nullable=False)
    secret_hash: Mapped[str | None] = mapped_column(Text, nullable=True)

    user_init: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_redeem: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_refund: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cobi_init: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cobi_redeem: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cobi_refund: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user_init_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    user_redeem_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    user_refund_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cobi_init_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cobi_redeem_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cobi_refund_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    user_init_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_redeem_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_refund_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    cobi_init_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    cobi_redeem_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    cobi_refund_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
