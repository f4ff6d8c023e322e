import sys

from tempvoice.cli import main

sys.exit(main())
