"""Main entry point when executing restpipe as a package.

This allows running the package using python -m restpipe.
"""

from restpipe.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
