import sys

from daovsdao.cli import main

sys.exit(main())
