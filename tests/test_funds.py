from decimal import Decimal

import pytest

from extensions import db
from models import BankCashout, Deposit, Withdrawal
from ledger.exceptions import (
    InsufficientFundsError, NonPositiveNetError, NotFoundError, UnsupportedBankError, ValidationError,
)

DESTINATION = "0x" + "9f" * 20


def test_deposit_counts_once_verified(ledger, make_user):
    user = make_user()
    address = ledger.accounts.resolve_default_address(user.id)

    deposit = ledger.funds.request_deposit(user.id, address, "usdt", "250.5", network="trc20", tx_reference=" abc ")
    assert deposit.status == "pending"
    assert deposit.symbol == "USDT"
    assert deposit.network == "TRC20"
    assert deposit.tx_reference == "abc"

    ledger.funds.verify_deposit(deposit.id)

    assert ledger.balances.get_balance(user.id, "USDT")["spendable"] == Decimal("250.5")
    assert ledger.funds.list_deposits(user.id)[0].verified_at is not None


def test_deposit_cannot_be_verified_twice(ledger, make_user):
    user = make_user()
    address = ledger.accounts.resolve_default_address(user.id)
    deposit = ledger.funds.request_deposit(user.id, address, "USDT", 10)
    ledger.funds.reject_deposit(deposit.id)

    with pytest.raises(ValidationError):
        ledger.funds.verify_deposit(deposit.id)
    assert ledger.balances.get_balance(user.id, "USDT")["spendable"] == Decimal("0")


def test_unknown_deposit(ledger):
    with pytest.raises(NotFoundError):
        ledger.funds.verify_deposit(12345)


def test_withdrawal_above_spendable_is_rejected(ledger, fund, make_user):
    user = make_user()
    address = fund(user, 50)

    with pytest.raises(InsufficientFundsError):
        ledger.funds.request_withdrawal(user.id, address, "USDT", 51, DESTINATION)
    assert Withdrawal.query.count() == 0


def test_withdrawal_lifecycle(ledger, fund, make_user):
    user = make_user()
    address = fund(user, 100)
    withdrawal = ledger.funds.request_withdrawal(user.id, address, "USDT", 60, DESTINATION)

    assert ledger.balances.get_balance(user.id, "USDT")["spendable"] == Decimal("40")

    ledger.funds.set_withdrawal_status(withdrawal.id, "approved")
    done = ledger.funds.set_withdrawal_status(withdrawal.id, "completed")
    assert done.status == "completed"
    assert done.processed_at is not None
    assert ledger.balances.get_balance(user.id, "USDT")["spendable"] == Decimal("40")

    with pytest.raises(ValidationError):
        ledger.funds.set_withdrawal_status(withdrawal.id, "rejected")


def test_rejected_withdrawal_releases_funds(ledger, fund, make_user):
    user = make_user()
    address = fund(user, 100)
    withdrawal = ledger.funds.request_withdrawal(user.id, address, "USDT", 60, DESTINATION)

    ledger.funds.set_withdrawal_status(withdrawal.id, "rejected")

    assert ledger.balances.get_balance(user.id, "USDT")["spendable"] == Decimal("100")


def test_withdrawal_status_must_be_known(ledger, fund, make_user):
    user = make_user()
    address = fund(user, 100)
    withdrawal = ledger.funds.request_withdrawal(user.id, address, "USDT", 10, DESTINATION)

    with pytest.raises(ValidationError):
        ledger.funds.set_withdrawal_status(withdrawal.id, "sent")


@pytest.fixture
def bank(ledger):
    return ledger.funds.add_bank("bdo", "BDO Unibank", channel="InstaPay")


def test_bank_cashout_is_debit_checked(ledger, fund, make_user, bank):
    user = make_user()
    address = fund(user, 100)

    cashout = ledger.funds.request_bank_cashout(
        user.id, address, "USDT", 70, "BDO", "0012345678", "Ada Obi",
    )
    assert cashout.status == "pending"
    assert cashout.bank_name == "BDO Unibank"
    assert ledger.balances.get_balance(user.id, "USDT")["cashouts"] == Decimal("70")

    with pytest.raises(InsufficientFundsError):
        ledger.funds.request_bank_cashout(user.id, address, "USDT", 31, "BDO", "0012345678", "Ada Obi")

    ledger.funds.set_cashout_status(cashout.id, "canceled")
    assert ledger.balances.get_balance(user.id, "USDT")["spendable"] == Decimal("100")
    assert [c.status for c in ledger.funds.list_cashouts(user.id)] == ["canceled"]


def test_bank_cashout_requires_bank_details(ledger, fund, make_user, bank):
    user = make_user()
    address = fund(user, 100)

    with pytest.raises(ValidationError):
        ledger.funds.request_bank_cashout(user.id, address, "USDT", 10, "BDO", " ", "Ada Obi")
    assert BankCashout.query.count() == 0


def test_cashout_stores_fx_quote(ledger, fund, make_user, bank):
    user = make_user()
    address = fund(user, 100)

    cashout = ledger.funds.request_bank_cashout(
        user.id, address, "USDT", 100, "bdo", "0012345678", "Ada Obi", note=" rent ",
    )

    # 100 x 58 = 5800, minus 1% FX fee (58) and the 25 PHP payout fee
    assert cashout.fx_rate == Decimal("58")
    assert cashout.gross_fiat == Decimal("5800")
    assert cashout.net_fiat == Decimal("5717")
    assert cashout.currency == "PHP"
    assert cashout.reference == "rent"


def test_quoted_rate_overrides_fallback(ledger):
    quote = ledger.funds.quote_cashout("100", rate="60")

    assert quote["gross"] == Decimal("6000")
    assert quote["fxFee"] == Decimal("60")
    assert quote["net"] == Decimal("5915")
    assert ledger.funds.quote_cashout("100", rate="0")["rate"] == Decimal("58")
    with pytest.raises(ValidationError):
        ledger.funds.quote_cashout("100", rate="abc")


def test_cashout_that_does_not_cover_fees_is_rejected(ledger, fund, make_user, bank):
    user = make_user()
    address = fund(user, 100)

    with pytest.raises(NonPositiveNetError) as excinfo:
        ledger.funds.request_bank_cashout(user.id, address, "USDT", "0.4", "BDO", "0012345678", "Ada Obi")

    assert excinfo.value.to_dict()["error"] == "NET_LE_0"
    assert BankCashout.query.count() == 0


def test_cashout_bank_must_be_active(ledger, fund, make_user, bank):
    user = make_user()
    address = fund(user, 100)
    ledger.funds.add_bank("BDO", "BDO Unibank", active=False)

    with pytest.raises(UnsupportedBankError):
        ledger.funds.request_bank_cashout(user.id, address, "USDT", 10, "BDO", "0012345678", "Ada Obi")
    with pytest.raises(UnsupportedBankError):
        ledger.funds.request_bank_cashout(user.id, address, "USDT", 10, "NOPE", "0012345678", "Ada Obi")
    assert ledger.funds.list_banks() == []
    assert [b.code for b in ledger.funds.list_banks(active_only=False)] == ["BDO"]


def test_cashout_only_from_settlement_asset(ledger, fund, make_user, bank):
    user = make_user()
    address = fund(user, 100, symbol="BTC")

    with pytest.raises(ValidationError):
        ledger.funds.request_bank_cashout(user.id, address, "BTC", 1, "BDO", "0012345678", "Ada Obi")


def test_amounts_keep_all_eighteen_decimals(ledger, make_user):
    user = make_user()
    address = ledger.accounts.resolve_default_address(user.id)
    for amount in ("0.123456789012345678", "1000000.000000000000000001"):
        deposit = ledger.funds.request_deposit(user.id, address, "USDT", amount)
        ledger.funds.verify_deposit(deposit.id)

    db.session.expire_all()

    assert Deposit.query.order_by(Deposit.id).first().amount == Decimal("0.123456789012345678")
    balance = ledger.balances.get_balance(user.id, "USDT")
    assert balance["spendable"] == Decimal("1000000.123456789012345679")


def test_checksummed_evm_address_books_to_the_same_key(ledger, make_user):
    user = make_user()
    address = next(a.address for a in ledger.accounts.list_addresses(user.id) if a.address.startswith("0x"))
    checksummed = "0x" + address[2:].upper()

    deposit = ledger.funds.request_deposit(user.id, checksummed, "USDT", 100)
    ledger.funds.verify_deposit(deposit.id)

    assert deposit.address == address
    assert ledger.balances.get_balance(user.id, "USDT", address=checksummed)["spendable"] == Decimal("100")
