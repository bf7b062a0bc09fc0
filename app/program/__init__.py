"""Wire-level helpers for the subscription billing program."""
