"""
l2agent: provider clients, conversation sessions and per-project memory
for the L2API Agent code editor.
"""

__version__ = "0.3.0"
