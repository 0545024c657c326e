import sys

from mps_load.cli import main

sys.exit(main())
