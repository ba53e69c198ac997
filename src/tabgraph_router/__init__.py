"""
Tiered query routing for browser-tab commands, backed by a tab knowledge graph
and a temporal pattern miner.
"""

__version__ = "0.1.0"
