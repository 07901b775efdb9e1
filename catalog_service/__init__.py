"""Catalog service: products, stock, and reconciliation of order events."""
