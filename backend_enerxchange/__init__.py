"""
Backend EnerXchange — read model over the EnerXchange energy-trading contract.

Reconstructs marketplace state (listings, user profiles, transaction history,
analytics) from contract reads and events, and submits contract writes with
refresh-after-confirmation. Modular layout: contract adapter, read-model
repositories, analytics, mutation dispatcher, API server.
"""

__version__ = "0.1.0"
