"""Entry point for the Quire CLI when run with ``python -m quire``."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
