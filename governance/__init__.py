"""Workspace governance core.

Approval chains and certificate delegation across an event's workspace tree.
"""

__version__ = "0.1.0"
