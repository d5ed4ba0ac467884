import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.wallet import Wallet, WalletTransaction

logger = logging.getLogger(__name__)

WALLET_CATEGORIES = ("referral_bonus", "referee_bonus", "promo_code", "booking_discount", "cashback", "refund", "manual")


def get_or_create_wallet(db: Session, user_id: str, for_update: bool = False) -> Wallet:
    stmt = select(Wallet).where(Wallet.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    wallet = db.execute(stmt).scalar_one_or_none()
    if wallet:
        return wallet
    wallet = Wallet(id=str(uuid.uuid4()), user_id=user_id, balance=Decimal("0"), total_earned=Decimal("0"), total_spent=Decimal("0"))
    db.add(wallet)
    db.flush()
    return wallet


def _record(db: Session, wallet: Wallet, amount: Decimal, type: str, category: str, description: str | None, reference_id: str | None) -> WalletTransaction:
    if category not in WALLET_CATEGORIES:
        raise ValueError(f"invalid wallet category: {category}")
    tx = WalletTransaction(
        id=str(uuid.uuid4()),
        wallet_id=wallet.id,
        user_id=wallet.user_id,
        amount=amount,
        type=type,
        category=category,
        description=description,
        reference_id=reference_id,
    )
    db.add(tx)
    return tx


def add_credits(db: Session, user_id: str, amount, category: str, description: str | None = None, reference_id: str | None = None) -> WalletTransaction:
    """Credit the wallet. Does not commit; the caller owns the transaction."""
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValueError("amount must be > 0")
    wallet = get_or_create_wallet(db, user_id, for_update=True)
    tx = _record(db, wallet, amount, "credit", category, description, reference_id)
    wallet.balance = Decimal(wallet.balance or 0) + amount
    wallet.total_earned = Decimal(wallet.total_earned or 0) + amount
    logger.info("Wallet %s credited %s (%s)", wallet.id, amount, category)
    return tx


def find_transaction(db: Session, user_id: str, reference_id: str, type: str) -> WalletTransaction | None:
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.user_id == user_id, WalletTransaction.reference_id == reference_id,
                WalletTransaction.type == type)
        .first()
    )


def list_transactions(db: Session, user_id: str, limit: int = 50) -> list[WalletTransaction]:
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.user_id == user_id)
        .order_by(WalletTransaction.created_at.desc())
        .limit(min(limit, 200))
        .all()
    )
