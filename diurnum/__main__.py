"""Package entry point for ``python -m diurnum``.

WHY: Users run the tool as ``python -m diurnum split notes.md`` without
installing the console script.

HOW: Delegates to the CLI's main() function.
"""

from diurnum.cli import main

if __name__ == "__main__":
    main()
