import sys

from todos.cli import main

sys.exit(main())
