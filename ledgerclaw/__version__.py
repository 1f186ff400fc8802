"""
LedgerClaw - Version and metadata
"""

__version__ = "0.3.0"
__author__ = "LedgerClaw Contributors"
__license__ = "MIT"
__description__ = "Daily financial email briefings with self-growing rule filters"
