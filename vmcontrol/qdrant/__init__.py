"""Audit history of VM control commands, stored in Qdrant."""
