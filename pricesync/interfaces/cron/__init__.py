"""Operator control surface for the price-sync scheduler."""
