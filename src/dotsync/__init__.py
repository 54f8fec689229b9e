"""dotsync - Keep dotfiles synchronized with a git repository."""
