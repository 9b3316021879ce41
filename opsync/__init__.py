"""
opsync - reconciliacion de work tracker, time tracker y store operativo.
"""

__version__ = "1.0.0"
