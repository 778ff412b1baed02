"""Entry point for running gitnormalize via python -m gitnormalize"""

from .cli import main

if __name__ == "__main__":
    main()
