import sys

from prosody_filer.cli import main

sys.exit(main())
