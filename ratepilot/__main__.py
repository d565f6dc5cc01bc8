import sys

from ratepilot.cli import main

sys.exit(main())
