"""
sfca-lsp: editor diagnostics and fix workflows for Code Analyzer.

Turns violations reported by external scanning engines into live,
position-accurate editor diagnostics and offers fixes for them without
ever applying a fix to text that has moved since analysis.
"""

__version__ = "0.3.0"
