import sys

from csfd_ratings.scraper.run import _cli_entrypoint

if __name__ == "__main__":
    # Same flags as the ``csfd-ratings`` console script, e.g. ``--test --max-items 5``.
    _cli_entrypoint(sys.argv[1:])
