"""Command-line interface."""
from vortexknots.main import main

if __name__ == "__main__":
    main()
