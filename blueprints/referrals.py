from urllib.parse import quote

from flask import Blueprint, current_app, jsonify, redirect, request
from flask_login import current_user, login_required

from ledger.engine import get_ledger
from ledger.referrals import normalize_code

bp = Blueprint("referrals", __name__)


def _link(code):
    return f"{request.host_url.rstrip('/')}/r/{code}"


def _client_origin():
    configured = current_app.config.get("APP_CLIENT_URL")
    if configured:
        return configured.rstrip("/")
    return request.host_url.rstrip("/")


# ==========================================================
#                  PUBLIC CLICK-THROUGH
# ==========================================================
@bp.route("/r/<code>", methods=["GET"])
def referral_redirect(code):
    """Count the click and bounce to the client's signup screen with the code attached."""
    code = normalize_code(code)
    get_ledger().referrals.record_click(code)
    route = current_app.config.get("REFERRAL_ROUTE", "/signup")
    return redirect(f"{_client_origin()}/?ref={quote(code)}#{route}", code=302)


# ==========================================================
#                  EARNER DASHBOARD
# ==========================================================
@bp.route("/referrals/me", methods=["GET"])
@login_required
def my_referrals():
    dashboard = get_ledger().referrals.get_referral_dashboard(current_user.id)
    return jsonify({
        "code": dashboard["code"],
        "link": _link(dashboard["code"]),
        "clicks": dashboard["clicks"],
        "referredCount": dashboard["referred_count"],
        "totalPaid": str(dashboard["total_paid"]),
        "totalPending": str(dashboard["total_pending"]),
    }), 200


@bp.route("/referrals/list", methods=["GET"])
@login_required
def referred_users():
    limit = request.args.get("limit", 200, type=int)
    return jsonify(get_ledger().referrals.list_referred_users(current_user.id, limit)), 200


@bp.route("/referrals/commissions", methods=["GET"])
@login_required
def commissions():
    limit = request.args.get("limit", 200, type=int)
    rows = get_ledger().referrals.list_commissions(current_user.id, limit)
    return jsonify([row.to_dict() for row in rows]), 200


@bp.route("/referrals/code", methods=["POST"])
@login_required
def set_code():
    data = request.get_json(silent=True) or {}
    code = get_ledger().referrals.set_user_referral_code(current_user.id, data.get("code"))
    return jsonify({"code": code, "link": _link(code)}), 200
