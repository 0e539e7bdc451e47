"""
flamewatch: interactive terminal flame graphs for folded stacks and live py-spy sampling.
"""

__version__ = "0.3.0"
