"""
Yapper — Live XP Leaderboards for Discord
==========================================
Scores every guild message, buffers the XP in Redis, and writes it behind
to PostgreSQL on a fixed interval.  Leaderboards merge the durable totals
with the not-yet-synced buffer so members see their XP move immediately.

Package layout::

    yapper/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Board titles, rank badges, emoji counting
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # user_xp + xp_flush_log
    ├── engine/
    │   ├── message_xp.py  # Message → XP scoring
    │   └── buffer.py      # Redis write buffer (HINCRBY / RENAME drain)
    ├── services/
    │   ├── xp_store.py            # Durable XP reads and writes
    │   ├── xp_sync_service.py     # Buffer → database write-behind
    │   └── leaderboard_service.py # Live (buffer-merged) reads
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/
            ├── xp.py          # on_message → buffered XP
            ├── leaderboard.py # /live, /rank, /clans
            ├── admin.py       # /set-xp, /reset-xp, /set-clan
            ├── membership.py  # Leave cleanup (member, guild)
            └── tasks.py       # Sync loop, period resets, flush-log pruning
"""

__version__ = "0.1.0"
