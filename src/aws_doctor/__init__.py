"""
AWS Doctor
==========

Staged diagnostics and guided repair for a local AWS CLI environment.
"""

__version__ = "0.1.0"
