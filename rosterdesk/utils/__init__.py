"""
Shared helpers for RosterDesk services.
"""
