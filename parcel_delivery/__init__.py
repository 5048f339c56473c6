"""
Event-driven core of the parcel delivery services: broker integration, order
state machine, auto-assignment, and the per-service producers and consumers
"""

__version__ = "1.0.0"
