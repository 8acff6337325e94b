"""
sfca command line interface.
"""
