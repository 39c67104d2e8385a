import pytest

from extensions import db
from models import ReferralCode, ReferralRelation, User, WalletAddress
from ledger.exceptions import ConflictError, NotFoundError, ValidationError


def test_registration_creates_addresses_and_code(ledger):
    user = ledger.accounts.register_user("Ada", "Ada@Example.com", "secret123")

    assert user.identifier == "ada@example.com"
    addresses = ledger.accounts.list_addresses(user.id)
    assert [a.network for a in addresses] == ["TRC20", "ERC20", "BEP20"]
    assert [a.is_default for a in addresses] == [True, False, False]
    assert addresses[0].address.startswith("T") and len(addresses[0].address) == 34
    assert addresses[1].address.startswith("0x") and len(addresses[1].address) == 42
    assert ledger.accounts.resolve_default_address(user.id) == addresses[0].address
    assert ReferralCode.query.filter_by(user_id=user.id).count() == 1


def test_registration_links_referrer(ledger, make_user, code_of):
    referrer = make_user()

    user = ledger.accounts.register_user("Bo", "+2348012345678", "secret123", referral_code=code_of(referrer).lower())

    relation = ReferralRelation.query.filter_by(referee_id=user.id).one()
    assert relation.referrer_id == referrer.id


def test_unknown_referral_code_is_ignored(ledger):
    user = ledger.accounts.register_user("Bo", "bo@example.com", "secret123", referral_code="NOPE1234")

    assert user.id is not None
    assert ReferralRelation.query.count() == 0


@pytest.mark.parametrize("name,identifier,password", [
    ("", "a@example.com", "secret123"),
    ("Ada", "not an email", "secret123"),
    ("Ada", "a@example.com", "short"),
])
def test_registration_validation(ledger, name, identifier, password):
    with pytest.raises(ValidationError):
        ledger.accounts.register_user(name, identifier, password)
    assert User.query.count() == 0
    assert WalletAddress.query.count() == 0


def test_duplicate_identifier(ledger, make_user):
    make_user()

    with pytest.raises(ConflictError):
        ledger.accounts.register_user("Again", "user1@example.com", "secret123")
    assert User.query.count() == 1


def test_notification_failure_does_not_undo_registration(ledger, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(ledger.notifier, "welcome", broken)

    user = ledger.accounts.register_user("Ada", "ada@example.com", "secret123")

    assert db.session.get(User, user.id) is not None
    assert WalletAddress.query.filter_by(user_id=user.id).count() == 3


def test_notifier_without_webhook_skips(ledger):
    assert ledger.notifier.send("user.registered", {"userId": 1}) is False


def test_authenticate(ledger, make_user):
    user = make_user(password="correct horse")

    assert ledger.accounts.authenticate("USER1@example.com", "correct horse").id == user.id
    assert ledger.accounts.authenticate("user1@example.com", "wrong") is None
    assert ledger.accounts.authenticate("nobody@example.com", "correct horse") is None
    assert ledger.accounts.authenticate("", "x") is None


def test_set_default_address_switches_atomically(ledger, make_user):
    user = make_user()
    addresses = ledger.accounts.list_addresses(user.id)
    target = addresses[2].address

    ledger.accounts.set_default_address(user.id, target)

    defaults = WalletAddress.query.filter_by(user_id=user.id, is_default=True).all()
    assert [a.address for a in defaults] == [target]
    assert ledger.accounts.resolve_default_address(user.id) == target


def test_cannot_default_someone_elses_address(ledger, make_user):
    owner = make_user()
    other = make_user()
    foreign = ledger.accounts.resolve_default_address(owner.id)

    with pytest.raises(NotFoundError):
        ledger.accounts.set_default_address(other.id, foreign)
    assert ledger.accounts.resolve_default_address(owner.id) == foreign
