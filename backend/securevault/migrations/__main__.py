import sys

from securevault.migrations.cli import main

sys.exit(main())
