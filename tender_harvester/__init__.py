"""
Tender Harvester - procurement listing extraction for public bidding portals.
"""

__version__ = "0.1.0"
