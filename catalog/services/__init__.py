"""Catalog services: external metadata, market rules, population and enhancement."""
