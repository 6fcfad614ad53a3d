"""
models/ - Domain Models
=======================
Plain dataclasses describing the rows the repositories read and write,
and the page container returned by searches.
"""
