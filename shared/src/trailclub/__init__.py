"""Membership billing core: webhook ledger and Stripe reconciliation."""
