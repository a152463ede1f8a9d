"""Crypto price alerts: cached exchange prices, fire-once alert matching and paged chat views."""
