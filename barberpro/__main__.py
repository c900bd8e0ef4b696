import sys

from barberpro.cli import main

sys.exit(main())
