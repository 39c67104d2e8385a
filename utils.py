import re
import secrets
from decimal import Decimal, InvalidOperation

from ledger.exceptions import ValidationError


BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
EVM_ADDRESS_RE = re.compile(r'^0x[0-9a-fA-F]{40}$')
TRON_ADDRESS_RE = re.compile(r'^T[1-9A-HJ-NP-Za-km-z]{33}$')
SYMBOL_RE = re.compile(r'^[A-Z0-9]{2,16}$')
MAX_FRACTION_DIGITS = 18
MAX_AMOUNT = Decimal("1000000000000")


def validate_email(email):
    return re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', email) is not None


def validate_phone(phone):
    return re.match(r'^\+?\d{9,15}$', phone) is not None


def validate_identifier(identifier):
    """Accounts sign up with either an email or a phone number."""
    identifier = (identifier or "").strip().lower()
    if not identifier or not (validate_email(identifier) or validate_phone(identifier)):
        raise ValidationError("A valid email or phone number is required")
    return identifier


def validate_address(address):
    """EVM addresses are keyed lowercase (checksum casing dropped); Tron base58 is case-sensitive."""
    address = (address or "").strip()
    if EVM_ADDRESS_RE.match(address):
        return address.lower()
    if not TRON_ADDRESS_RE.match(address):
        raise ValidationError(f"Invalid wallet address: {address!r}")
    return address


def normalize_symbol(symbol):
    symbol = (symbol or "").strip().upper()
    if not SYMBOL_RE.match(symbol):
        raise ValidationError(f"Invalid asset symbol: {symbol!r}")
    return symbol


def parse_amount(value, field_name="amount"):
    """Positive fixed-point amount with at most 18 fractional digits."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number")

    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field_name} must be greater than zero")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} exceeds the maximum of {MAX_AMOUNT}")
    if -amount.as_tuple().exponent > MAX_FRACTION_DIGITS:
        raise ValidationError(f"{field_name} has more than {MAX_FRACTION_DIGITS} decimal places")
    return amount


def generate_address(network):
    """Bookkeeping label in the network's address format; nothing is derived or signed."""
    if network.upper().startswith("TRC"):
        return "T" + "".join(secrets.choice(BASE58_ALPHABET) for _ in range(33))
    return "0x" + secrets.token_hex(20)
