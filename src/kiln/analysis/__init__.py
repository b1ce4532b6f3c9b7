"""Static analysis of template code.

Currently one analysis: free names, the identifiers a compiled template
binds from the data context before its body runs.
"""

from kiln.analysis.free_vars import FreeNameScanner, free_names

__all__ = ["FreeNameScanner", "free_names"]
