"""cling: run your scripts on files, one keypress away."""
