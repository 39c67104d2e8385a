# ledger/config.py
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import Dict, Tuple

from ledger.exceptions import ValidationError


class LedgerConfig:
    """
    Yield and commission configuration built from the Flask config.
    Contract length -> daily rate step table:
    7 days: 2%, 15 days: 3%, 30 days: 3.5%, 60 days: 4%, anything else: 3%.
    Commissions: tier 1 (direct referrer) 20%, tier 2 (referrer's referrer) 15%.
    """

    MAX_TIER = 2

    def __init__(self, mapping):
        self.tier_rates = {
            1: self._decimal(mapping.get("REFERRAL_TIER1_RATE", "0.20"), "REFERRAL_TIER1_RATE"),
            2: self._decimal(mapping.get("REFERRAL_TIER2_RATE", "0.15"), "REFERRAL_TIER2_RATE"),
        }
        table = mapping.get("CONTRACT_RATE_TABLE") or {}
        self.rate_table: Dict[int, Decimal] = {
            int(days): self._decimal(rate, f"CONTRACT_RATE_TABLE[{days}]") for days, rate in table.items()
        }
        self.default_daily_rate = self._decimal(mapping.get("DEFAULT_DAILY_RATE", "0.03"), "DEFAULT_DAILY_RATE")
        self.allowed_days = tuple(sorted(int(d) for d in mapping.get("CONTRACT_DAYS_ALLOWED", (7, 15, 30, 60))))
        self.settlement_symbol = str(mapping.get("REFERRAL_SETTLEMENT_SYMBOL", "USDT")).upper()
        self.payout_cutoff = self.parse_cutoff(mapping.get("PAYOUT_CUTOFF", "00:05"))
        self.payout_min_amount = self._decimal(mapping.get("PAYOUT_MIN_AMOUNT", "0"), "PAYOUT_MIN_AMOUNT")
        self.cashout_symbol = str(mapping.get("CASHOUT_SYMBOL", "USDT")).upper()
        self.cashout_currency = str(mapping.get("CASHOUT_CURRENCY", "PHP")).upper()
        self.fallback_cashout_rate = self._decimal(mapping.get("FALLBACK_USDT_PHP", "58"), "FALLBACK_USDT_PHP")
        self.fx_fee_pct = self._decimal(mapping.get("FX_FEE_PCT", "0.01"), "FX_FEE_PCT")
        self.payout_fee = self._decimal(mapping.get("PAYOUT_FEE_PHP", "25"), "PAYOUT_FEE_PHP")
        self.tz_offset_minutes = int(mapping.get("BUSINESS_TZ_OFFSET_MINUTES", 0))
        self.networks = tuple(str(n).upper() for n in mapping.get("WALLET_NETWORKS", ("TRC20", "ERC20", "BEP20")))

    @staticmethod
    def _decimal(value, name) -> Decimal:
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValueError(f"{name} is not a valid decimal: {value!r}")

    @staticmethod
    def parse_cutoff(value) -> time:
        if isinstance(value, time):
            return value
        try:
            hours, minutes = str(value).split(":", 1)
            return time(int(hours), int(minutes))
        except (ValueError, TypeError):
            raise ValueError(f"PAYOUT_CUTOFF must look like HH:MM, got {value!r}")

    def daily_rate_for(self, days: int) -> Decimal:
        """Daily rate for a contract length; lengths outside the table get the default rate."""
        if days not in self.allowed_days:
            raise ValidationError(
                f"Contract length must be one of {', '.join(str(d) for d in self.allowed_days)} days"
            )
        return self.rate_table.get(days, self.default_daily_rate)

    def tier_rate(self, tier: int) -> Decimal:
        return self.tier_rates[tier]

    def validate(self) -> Tuple[bool, str]:
        """Check that the configuration is mathematically sound"""
        for tier, rate in self.tier_rates.items():
            if rate < 0 or rate > 1:
                return False, f"Tier {tier} rate out of range: {rate}"
        if sum(self.tier_rates.values()) > 1:
            return False, "Combined commission rates exceed 100% of profit"

        for days, rate in self.rate_table.items():
            if days <= 0:
                return False, f"Contract length must be positive, got {days}"
            if rate <= 0 or rate >= 1:
                return False, f"Daily rate for {days} days out of range: {rate}"
        if self.default_daily_rate <= 0 or self.default_daily_rate >= 1:
            return False, f"Default daily rate out of range: {self.default_daily_rate}"

        if not self.allowed_days or self.allowed_days[0] <= 0:
            return False, "Allowed contract lengths must be positive"
        if self.payout_min_amount < 0:
            return False, "Payout minimum amount must not be negative"
        if self.fallback_cashout_rate <= 0:
            return False, f"Cash-out FX rate must be positive, got {self.fallback_cashout_rate}"
        if self.fx_fee_pct < 0 or self.fx_fee_pct >= 1:
            return False, f"FX fee out of range: {self.fx_fee_pct}"
        if self.payout_fee < 0:
            return False, "Cash-out payout fee must not be negative"
        if not -14 * 60 <= self.tz_offset_minutes <= 14 * 60:
            return False, f"Business timezone offset out of range: {self.tz_offset_minutes} minutes"

        return True, (
            f"Ledger configuration valid: tiers {self.tier_rates[1] * 100}%/{self.tier_rates[2] * 100}%, "
            f"{len(self.allowed_days)} contract lengths"
        )
