"""Command line tool for tm-local."""
