"""
ENODE-DASH - live terminal dashboard for p2p node peer events
"""

__version__ = "0.1.0"
