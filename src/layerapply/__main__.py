import sys

from layerapply._cli import main

sys.exit(main())
