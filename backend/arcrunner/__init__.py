"""ArcRunner - production tracking and generation dashboard for microdrama series.

Series contain episodes, episodes contain clips. Clips reference named
assets from a per-series studio library and are rendered through the
KIE.ai image/video task API.
"""

__version__ = "0.1.0"
