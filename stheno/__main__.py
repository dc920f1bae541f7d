"""Entry point for the Stheno CLI.

Allows running the task runner with ``python -m stheno``.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
