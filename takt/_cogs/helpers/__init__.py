"""
Low-level helpers with no knowledge of the loops or the backoffs.
"""
