"""AniSync core: identity matching, mapping import, sync runs and progress."""
