"""Catalogue and reconciliation services built on the two stores."""
