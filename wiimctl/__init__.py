"""
wiimctl — control a WiiM / LinkPlay network player alongside whatever the
local machine is playing, with one of the two always "active".
"""

__version__ = "0.1.0"
