import sys

from tabledump.cli import main

sys.exit(main())
