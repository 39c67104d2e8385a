# ledger/referrals.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
import hashlib
import logging
import re
import secrets

from sqlalchemy import func

from extensions import db
from models import ReferralCode, ReferralRelation, ReferralReward, RewardStatus, User
from ledger.exceptions import ConflictError, ValidationError
from ledger.store import sum_of, transactional

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r'^[A-Z0-9_-]{4,32}$')
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no 0/O or 1/I
GENERATE_ATTEMPTS = 20
MAX_LIST_LIMIT = 500


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


def referral_balance_contribution(user_id: int) -> Decimal:
    """Paid commissions; the only referral figure that counts toward spendable."""
    return sum_of(
        ReferralReward.amount,
        ReferralReward.user_id == user_id,
        ReferralReward.status == RewardStatus.PAID.value,
    )


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _code_taken(code: str) -> bool:
    return db.session.query(ReferralCode.id).filter(ReferralCode.code == code).first() is not None


def generate_unique_code(user_id: int) -> str:
    """
    U<id> plus three random characters for the first ten tries, fully random
    after that, and a hash-derived code if everything collided.
    """
    for attempt in range(GENERATE_ATTEMPTS):
        base = f"U{user_id}{_random_code(3)}" if attempt < 10 else _random_code(10)
        code = base[:12].upper()
        if not _code_taken(code):
            return code
    seed = f"{user_id}{datetime.now(timezone.utc).timestamp()}".encode()
    tail = hashlib.sha1(seed).hexdigest()[:4]
    return f"U{user_id}{tail}".upper()


class ReferralService:
    """Referral codes, signup attribution, click counting and the earner's dashboard."""

    @staticmethod
    def code_for(user_id: int) -> Optional[ReferralCode]:
        return ReferralCode.query.filter_by(user_id=user_id).first()

    def provision_code(self, user_id: int, desired=None) -> str:
        """
        Give the user a code inside the caller's transaction. A desired code
        that is malformed or already claimed falls back to a generated one.
        """
        existing = self.code_for(user_id)
        if existing is not None:
            return existing.code

        desired = normalize_code(desired)
        if desired and CODE_RE.match(desired) and not _code_taken(desired):
            code = desired
        else:
            code = generate_unique_code(user_id)
        db.session.add(ReferralCode(user_id=user_id, code=code, clicks=0))
        db.session.flush()
        return code

    def set_user_referral_code(self, user_id: int, desired=None) -> str:
        """
        Claim `desired` for the user (replacing their current code), or return the
        current code / create a random one when nothing is asked for.
        """
        desired = normalize_code(desired)
        if desired and not CODE_RE.match(desired):
            raise ValidationError("Referral code must be 4-32 characters of A-Z, 0-9, _ or -")

        with transactional(f"referral code for user {user_id}"):
            current = self.code_for(user_id)
            if not desired:
                if current is not None:
                    return current.code
                code = generate_unique_code(user_id)
                db.session.add(ReferralCode(user_id=user_id, code=code, clicks=0))
                logger.info(f"Generated referral code {code} for user {user_id}")
                return code

            if current is not None and current.code == desired:
                return desired

            owner = ReferralCode.query.filter_by(code=desired).first()
            if owner is not None:
                raise ConflictError(f"Referral code {desired} is already taken")

            if current is None:
                db.session.add(ReferralCode(user_id=user_id, code=desired, clicks=0))
            else:
                current.code = desired

        logger.info(f"User {user_id} claimed referral code {desired}")
        return desired

    def attribute_referral_on_signup(self, new_user_id: int, code) -> Optional[int]:
        """
        Link the new user under the owner of `code`, inside the caller's transaction.
        Missing, malformed, unknown or self codes are ignored, as is an existing link.
        Returns the referrer id when a link was written.
        """
        code = normalize_code(code)
        if not code or not CODE_RE.match(code):
            return None

        owner = ReferralCode.query.filter_by(code=code).first()
        if owner is None:
            logger.info(f"Signup for user {new_user_id} used unknown referral code {code}")
            return None
        referrer_id = owner.user_id
        if not referrer_id or referrer_id == new_user_id:
            return None

        linked = db.session.query(ReferralRelation.id).filter(
            ReferralRelation.referee_id == new_user_id
        ).first()
        if linked is not None:
            return None

        db.session.add(ReferralRelation(referrer_id=referrer_id, referee_id=new_user_id))
        db.session.flush()
        logger.info(f"User {new_user_id} attributed to referrer {referrer_id} via {code}")
        return referrer_id

    def record_click(self, code) -> bool:
        code = normalize_code(code)
        if not CODE_RE.match(code):
            return False
        with transactional(f"click on referral code {code}"):
            updated = ReferralCode.query.filter(ReferralCode.code == code).update(
                {"clicks": ReferralCode.clicks + 1}, synchronize_session=False
            )
        return bool(updated)

    def get_referral_dashboard(self, user_id: int) -> Dict:
        code = self.code_for(user_id)
        if code is None:
            self.set_user_referral_code(user_id)
            code = self.code_for(user_id)

        referred = db.session.query(func.count(ReferralRelation.id)).filter(
            ReferralRelation.referrer_id == user_id
        ).scalar()

        total_paid = referral_balance_contribution(user_id)
        total_pending = sum_of(
            ReferralReward.amount,
            ReferralReward.user_id == user_id,
            ReferralReward.status == RewardStatus.PENDING.value,
        )

        return {
            "code": code.code,
            "clicks": code.clicks or 0,
            "referred_count": int(referred or 0),
            "total_paid": total_paid,
            "total_pending": total_pending,
        }

    def list_referred_users(self, user_id: int, limit: int = 200) -> List[Dict]:
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        rows = (
            db.session.query(ReferralRelation, User, ReferralCode.code)
            .join(User, User.id == ReferralRelation.referee_id)
            .outerjoin(ReferralCode, ReferralCode.user_id == ReferralRelation.referee_id)
            .filter(ReferralRelation.referrer_id == user_id)
            .order_by(ReferralRelation.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "referralId": relation.id,
                "userId": user.id,
                "name": user.name,
                "identifier": user.identifier,
                "refereeCode": referee_code,
                "createdAt": relation.created_at.isoformat() if relation.created_at else None,
            }
            for relation, user, referee_code in rows
        ]

    def list_commissions(self, user_id: int, limit: int = 200) -> List[ReferralReward]:
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        return (
            ReferralReward.query.filter_by(user_id=user_id)
            .order_by(ReferralReward.id.desc())
            .limit(limit)
            .all()
        )

    def referral_balance_contribution(self, user_id: int) -> Decimal:
        return referral_balance_contribution(user_id)
