"""Package entry point for ``python -m audiosprite``.

WHY: Users run the packer as ``python -m audiosprite -o out *.wav``.
Python's ``-m`` flag looks for ``__main__.py`` inside the package and
executes it.

HOW: Delegates to the CLI's main() function.
"""

from audiosprite.cli import main

if __name__ == "__main__":
    main()
