"""Allow running as ``python -m gallerybox``."""

import sys

from gallerybox.cli import main


if __name__ == "__main__":
    sys.exit(main())
