"""
CLI entry point, when used as a module: `python -m kuberelay`.
"""
from kuberelay import cli

if __name__ == '__main__':
    cli.main()
