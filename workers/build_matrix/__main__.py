import sys

from build_matrix.cli import main

sys.exit(main())
