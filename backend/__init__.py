"""Zari Perfumes storefront backend."""
