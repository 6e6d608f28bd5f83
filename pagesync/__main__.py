import sys

from pagesync.cli import main

sys.exit(main())
