"""Allow running the CLI as ``python -m logtap.cli``."""

from .main import main

main()
