"""Domain logic: sync, bookmarks and field analysis."""
