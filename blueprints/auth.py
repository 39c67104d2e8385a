from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user

from ledger.engine import get_ledger

#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="")


#===========================================================================
#      SIGN UP ROUTE.
#==============================================================================
@bp.route("/api/signup", methods=["POST"])
def signup():
    """
    Create a new user with bookkeeping addresses and a referral code.
    Expected JSON:
    {
        "fullName": "",
        "identifier": "email or phone",
        "password": "",
        "referralCode": ""      (optional)
    }
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Invalid or missing JSON body"}), 400

    ledger = get_ledger()
    user = ledger.accounts.register_user(
        name=data.get("fullName", ""),
        identifier=data.get("identifier") or data.get("email") or data.get("phone"),
        password=data.get("password", ""),
        referral_code=data.get("referralCode"),
    )
    login_user(user)
    session["user_id"] = user.id
    current_app.logger.info(f"Signup complete for user {user.id}")

    code = ledger.referrals.code_for(user.id)
    return jsonify({
        "status": "success",
        "message": "Signup successful",
        "user": user.to_dict(),
        "addresses": [a.to_dict() for a in ledger.accounts.list_addresses(user.id)],
        "referralCode": code.code if code else None,
    }), 201


# --------------------------------------------------
#      Login Route
# --------------------------------------------------
@bp.route("/api/login", methods=["POST"])
def login():
    """
    Authenticate a user.
    Expected JSON:
    {
        "identifier": "",
        "password": ""
    }
    """
    data = request.get_json(silent=True) or {}
    identifier = (data.get("identifier") or data.get("email_or_phone") or "").strip()
    password = data.get("password", "")

    if not identifier or not password:
        return jsonify({"error": "Email/Phone and password are required"}), 400

    user = get_ledger().accounts.authenticate(identifier, password)
    if user is None:
        return jsonify({"error": "Invalid credentials"}), 401

    login_user(user)
    session["user_id"] = user.id

    return jsonify({
        "message": "Login successful",
        "user": user.to_dict()
    }), 200


#-----------------------------------------------------------------------------------------------------
@bp.route("/api/logout", methods=["POST"])
@login_required
def logout():
    """
    Destroy User session
    """
    logout_user()
    session.clear()
    return jsonify({"message": "Logged out successfully"}), 200


# --------------------------------------------------
# Check Session (for frontend auto-login)
# --------------------------------------------------
@bp.route("/session", methods=["GET"])
def check_session():
    """Returns current logged-in user data if authenticated"""
    if not current_user.is_authenticated:
        return jsonify({"authenticated": False}), 200

    return jsonify({
        "authenticated": True,
        "user": current_user.to_dict()
    }), 200
