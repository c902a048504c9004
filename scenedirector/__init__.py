# scenedirector/__init__.py
"""
Scene Director - voice/text driven editing of a shared 2-D scene graph.

Untrusted model output is repaired, validated, guarded and stabilized before
a pure reducer applies it to the one canonical scene this process owns.
"""

__version__ = "1.0.0"
