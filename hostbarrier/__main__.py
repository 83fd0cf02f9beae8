import sys

from hostbarrier.cli import main

sys.exit(main())
