"""
Yield ledger engine: accrual, realtime pro-ration, referral commissions,
balances and payouts. The per-app container lives in ledger.engine.
"""
