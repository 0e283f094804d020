import sys

from f1recorder.main import main

sys.exit(main())
