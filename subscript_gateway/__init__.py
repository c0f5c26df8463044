"""
SubScript Gateway - Source Package

The AI gateway and sync layer of the SubScript subscription/budget tracker.

DESIGN PRINCIPLES:
1. Every vendor call is signed fresh - signatures are never reused
2. Streaming sessions end exactly once (complete, fail, or cancel)
3. Document understanding degrades to "please clarify", never to a crash
4. The backend answers every request with an envelope, even on bugs
5. Configuration is passed in explicitly, never read ambiently
"""

__version__ = "1.0.0"
__author__ = "SubScript Team"
