"""
flowmapper
==========

Autonomous web application explorer. Each session drives a live browser
through an observe → decide → execute → persist loop, detects cycles by
state fingerprint, backtracks into unexplored branches and records the
discovered state graph.
"""

__version__ = "0.1.0"
