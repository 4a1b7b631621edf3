"""ControVerse: real-time group chat relay."""
