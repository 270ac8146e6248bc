"""The `modgraph` APIs."""

__version__ = "0.1.0"

from .modgraph import *
