"""Shipyard - deployment control plane."""
