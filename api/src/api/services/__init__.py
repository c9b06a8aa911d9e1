"""Billing services: webhook ledger, Stripe client, member store and reconciliation."""
