"""Allow running chopup as ``python -m chopup``."""

from chopup.cli import main

if __name__ == "__main__":
    main()
