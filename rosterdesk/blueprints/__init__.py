"""
Flask blueprints for RosterDesk.
"""
