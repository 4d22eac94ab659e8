"""Allow running as: python -m pricing_council"""

from pricing_council.main import cli

if __name__ == "__main__":
    cli()
