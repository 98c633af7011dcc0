"""CLI package for eml-archive.

- run.py: Archive new messages
- misc.py: init, status, watermark
- utils.py: Shared utilities and helpers
"""

import click
from dotenv import load_dotenv

from .utils import AliasGroup

from .misc import init, status, watermark
from .run import run


@click.group(cls=AliasGroup, aliases={
    'i': 'init',
    'r': 'run',
    's': 'status',
    'w': 'watermark',
})
def main():
    """Incrementally archive email into a dated .eml tree."""
    load_dotenv()


main.add_command(init)
main.add_command(run)
main.add_command(status)
main.add_command(watermark)


__all__ = [
    'main',
    'init',
    'run',
    'status',
    'watermark',
]
