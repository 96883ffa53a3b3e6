"""Booking lifecycle and ledger engine."""
