import sys

from cling.main import main

sys.exit(main())
