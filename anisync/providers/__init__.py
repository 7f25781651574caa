"""Concrete list and library source clients."""
