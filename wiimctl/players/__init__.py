"""
Players — the transports the sources talk through.

A player does NOT decide anything.  It speaks one backend's protocol and
raises ``WiiMError`` subclasses when that fails.

Current players:
  linkplay.py  — WiiM / LinkPlay HTTP API client (httpapi.asp)
  mpris.py     — local now-playing bridge via playerctl (MPRIS)
"""
