"""HypeConnect payments backend: Paystack ledger, fraud checks, and booking settlement."""
