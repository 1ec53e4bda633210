"""
Tapesim: Tape Index Simulator

A timing-model simulator for comparing index strategies on
sequential-access tape storage.
"""

__version__ = "0.1.0"
