from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from ledger.engine import get_ledger

bp = Blueprint("wallet", __name__, url_prefix="/api")


def _plain(data):
    """Amounts go out as strings so no precision is lost in JSON."""
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in data.items()}


def _json_body():
    return request.get_json(silent=True) or {}


def _limit():
    return request.args.get("limit", 200, type=int)


# ==========================================================
#                  BALANCE
# ==========================================================
@bp.route("/balance", methods=["GET"])
@login_required
def balance():
    symbol = request.args.get("symbol", "USDT")
    result = get_ledger().balances.get_balance(current_user.id, symbol, address=request.args.get("address"))
    return jsonify(_plain(result)), 200


# ==========================================================
#                  SUBSCRIPTIONS
# ==========================================================
@bp.route("/subscriptions", methods=["GET"])
@login_required
def list_subscriptions():
    subs = get_ledger().subscriptions.list_subscriptions(current_user.id, request.args.get("address"))
    return jsonify([sub.to_dict() for sub in subs]), 200


@bp.route("/subscriptions", methods=["POST"])
@login_required
def create_subscription():
    """
    Expected JSON:
    {"address": "", "symbol": "USDT", "principal": "1000", "days": 15}
    """
    data = _json_body()
    ledger = get_ledger()
    address = ledger.balances.resolve_address(current_user.id, data.get("address"))
    sub = ledger.subscriptions.create_subscription(
        current_user.id, address, data.get("symbol"), data.get("principal"), data.get("days"),
    )
    current_app.logger.info(f"Subscription {sub.id} created for user {current_user.id}")
    return jsonify(sub.to_dict()), 201


@bp.route("/subscriptions/status", methods=["POST"])
@login_required
def subscription_status():
    data = _json_body()
    ledger = get_ledger()
    address = ledger.balances.resolve_address(current_user.id, data.get("address"))
    sub = ledger.subscriptions.set_subscription_status(
        current_user.id, address, data.get("symbol"), data.get("status"),
    )
    return jsonify(sub.to_dict()), 200


# ==========================================================
#                  PROFIT
# ==========================================================
@bp.route("/profit/today", methods=["GET"])
@login_required
def profit_today():
    result = get_ledger().subscriptions.get_profit_today(current_user.id, request.args.get("address"))
    return jsonify(_plain(result)), 200


@bp.route("/profit/summary", methods=["GET"])
@login_required
def profit_summary():
    result = get_ledger().subscriptions.get_profit_summary(current_user.id, request.args.get("address"))
    return jsonify(_plain(result)), 200


# ==========================================================
#                  DEPOSITS, WITHDRAWALS, CASH-OUTS
# ==========================================================
@bp.route("/deposits", methods=["GET", "POST"])
@login_required
def deposits():
    funds = get_ledger().funds
    if request.method == "GET":
        return jsonify([d.to_dict() for d in funds.list_deposits(current_user.id, _limit())]), 200

    data = _json_body()
    address = get_ledger().balances.resolve_address(current_user.id, data.get("address"))
    deposit = funds.request_deposit(
        current_user.id, address, data.get("symbol"), data.get("amount"),
        network=data.get("network"),
        tx_reference=data.get("txReference"),
        proof_reference=data.get("proofReference"),
    )
    return jsonify(deposit.to_dict()), 201


@bp.route("/withdrawals", methods=["GET", "POST"])
@login_required
def withdrawals():
    funds = get_ledger().funds
    if request.method == "GET":
        return jsonify([w.to_dict() for w in funds.list_withdrawals(current_user.id, _limit())]), 200

    data = _json_body()
    address = get_ledger().balances.resolve_address(current_user.id, data.get("address"))
    withdrawal = funds.request_withdrawal(
        current_user.id, address, data.get("symbol"), data.get("amount"), data.get("destination"),
    )
    return jsonify(withdrawal.to_dict()), 201


@bp.route("/cashouts", methods=["GET", "POST"])
@login_required
def cashouts():
    funds = get_ledger().funds
    if request.method == "GET":
        return jsonify([c.to_dict() for c in funds.list_cashouts(current_user.id, _limit())]), 200

    data = _json_body()
    address = get_ledger().balances.resolve_address(current_user.id, data.get("address"))
    cashout = funds.request_bank_cashout(
        current_user.id, address, data.get("symbol"), data.get("amount"),
        bank_code=data.get("bankCode"),
        account_number=data.get("accountNumber"),
        account_name=data.get("accountName"),
        rate=data.get("rate"),
        note=data.get("note"),
    )
    return jsonify(cashout.to_dict()), 201


# ==========================================================
#                  BANKS & RATES
# ==========================================================
@bp.route("/banks", methods=["GET"])
@login_required
def banks():
    return jsonify([bank.to_dict() for bank in get_ledger().funds.list_banks()]), 200


@bp.route("/rates/cashout", methods=["GET"])
@login_required
def cashout_rate():
    return jsonify(_plain(get_ledger().funds.cashout_rate())), 200


@bp.route("/cashouts/quote", methods=["POST"])
@login_required
def cashout_quote():
    """
    Expected JSON:
    {"amount": "100", "rate": "58.2"}
    """
    data = _json_body()
    quote = get_ledger().funds.quote_cashout(data.get("amount"), data.get("rate"))
    return jsonify(_plain(quote)), 200


# ==========================================================
#                  ADDRESSES
# ==========================================================
@bp.route("/addresses", methods=["GET"])
@login_required
def addresses():
    return jsonify([a.to_dict() for a in get_ledger().accounts.list_addresses(current_user.id)]), 200


@bp.route("/addresses/default", methods=["POST"])
@login_required
def default_address():
    data = _json_body()
    address = get_ledger().accounts.set_default_address(current_user.id, data.get("address"))
    return jsonify(address.to_dict()), 200
