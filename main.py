"""Single-document wiki server: serves wiki.html and accepts authenticated uploads."""

import sys

from wikiserver.app import main

if __name__ == "__main__":
    sys.exit(main())
