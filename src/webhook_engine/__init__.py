"""Outbound webhook delivery engine for the commerce platform."""
