"""Scheduled sensor check: opens alerts for every assigned sensor."""
