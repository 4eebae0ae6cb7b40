"""Clients for the remote fulfillment service."""
