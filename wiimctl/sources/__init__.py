"""
Sources — the two things the router chooses between.

Each source polls its backend on a fixed interval, keeps the last snapshot,
and notifies listeners when the title, artist, play state, identity or
availability changes.  The router decides which source is active.

Current sources:
  wiim.py   — the configured WiiM device (presets, EQ, artwork)
  local.py  — the local machine's current media player
"""
