import sys

from testloop.cli import main

sys.exit(main())
