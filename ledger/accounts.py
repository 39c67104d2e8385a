# ledger/accounts.py
from typing import List, Optional
import logging

from extensions import db
from models import User, WalletAddress
from ledger.exceptions import ConflictError, NotFoundError, ValidationError
from ledger.store import transactional
from utils import generate_address, validate_address, validate_identifier

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
ADDRESS_ATTEMPTS = 5


class AccountService:
    """Signup, login and the bookkeeping addresses each user holds per network."""

    def __init__(self, config, referrals, notifier):
        self.config = config
        self.referrals = referrals
        self.notifier = notifier

    # ==========================================================
    #                  REGISTRATION
    # ==========================================================
    def _new_address(self, network: str) -> str:
        for _ in range(ADDRESS_ATTEMPTS):
            address = generate_address(network)
            if db.session.query(WalletAddress.id).filter(WalletAddress.address == address).first() is None:
                return address
        raise ConflictError(f"Could not allocate a unique {network} address")

    def register_user(self, name, identifier, password, referral_code=None) -> User:
        """
        User, one address per network (first one default), own referral code and the
        referral link are written together; the welcome notification follows the commit.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        identifier = validate_identifier(identifier)
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        if User.query.filter_by(identifier=identifier).first() is not None:
            raise ConflictError("Email or phone already registered")

        with transactional(f"registration of {identifier}"):
            user = User(name=name, identifier=identifier, is_active=True)
            user.set_password(password)
            db.session.add(user)
            db.session.flush()

            default_address = None
            for position, network in enumerate(self.config.networks):
                address = self._new_address(network)
                db.session.add(WalletAddress(
                    user_id=user.id,
                    network=network,
                    address=address,
                    is_default=position == 0,
                ))
                if position == 0:
                    default_address = address

            # the new user's own code is provisioned before the link so a self code cannot match
            own_code = self.referrals.provision_code(user.id)
            referrer_id = self.referrals.attribute_referral_on_signup(user.id, referral_code)

        logger.info(
            f"Registered user {user.id} with {len(self.config.networks)} address(es)"
            + (f", referred by {referrer_id}" if referrer_id else "")
        )

        try:
            self.notifier.welcome(user, default_address, own_code)
        except Exception as e:
            logger.error(f"Welcome notification for user {user.id} failed: {e}", exc_info=True)
        return user

    def authenticate(self, identifier, password) -> Optional[User]:
        try:
            identifier = validate_identifier(identifier)
        except ValidationError:
            return None
        user = User.query.filter_by(identifier=identifier).first()
        if user is None or not user.is_active or not user.check_password(password or ""):
            logger.info(f"Failed login for {identifier}")
            return None
        return user

    # ==========================================================
    #                  ADDRESSES
    # ==========================================================
    def list_addresses(self, user_id: int) -> List[WalletAddress]:
        return (WalletAddress.query.filter_by(user_id=user_id)
                .order_by(WalletAddress.is_default.desc(), WalletAddress.id).all())

    def set_default_address(self, user_id: int, address) -> WalletAddress:
        """Exactly one default per user; the switch happens in a single transaction."""
        address = validate_address(address)
        with transactional(f"default address switch for user {user_id}"):
            target = WalletAddress.query.filter_by(user_id=user_id, address=address).first()
            if target is None:
                raise NotFoundError(f"Address {address} does not belong to this user")
            WalletAddress.query.filter(
                WalletAddress.user_id == user_id,
                WalletAddress.id != target.id,
            ).update({"is_default": False}, synchronize_session=False)
            target.is_default = True

        logger.info(f"User {user_id} default address set to {address}")
        return target

    @staticmethod
    def resolve_default_address(user_id: int) -> Optional[str]:
        row = (db.session.query(WalletAddress.address)
               .filter(WalletAddress.user_id == user_id)
               .order_by(WalletAddress.is_default.desc(), WalletAddress.id)
               .first())
        return row[0] if row else None
