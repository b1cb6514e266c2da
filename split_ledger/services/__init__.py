"""
Services Package

Backends for the ledger's external collaborators: expense and debt
storage, audit storage and participant notifications.
"""
