"""
Helper tools to test the code with the loops & backoffs.

This module is a part of the library's public interface.
"""
from takt._kits.fakeclock import FakeClock

__all__ = [
    'FakeClock',
]
